"""Booking repository layer (the booking store)."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coachcarter.core.enums import BookingStatusEnum
from coachcarter.modules.booking.models import Booking
from coachcarter.shared.exceptions import ConflictException, InvalidTransitionException, NotFoundException
from coachcarter.shared.utils import utc_now


class BookingRepository:
    """DB operations for booking domain.

    Exposes no update or delete beyond ``advance_status``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, booking: Booking) -> Booking:
        """Insert a booking, raising ``ConflictException`` on a taken key.

        Uniqueness is enforced by the database constraints, so two concurrent
        deliveries of the same session cannot both succeed.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(booking)
                await self.session.flush()
        except IntegrityError as exc:
            existing = await self.get_by_session_id(booking.session_id)
            if existing is not None:
                raise ConflictException(
                    f"Booking for session {booking.session_id} already exists",
                    field="session_id",
                ) from exc
            raise ConflictException(
                f"Booking reference {booking.booking_reference} is already taken",
                field="booking_reference",
            ) from exc
        return booking

    async def get_by_reference(self, booking_reference: str) -> Booking | None:
        stmt = select(Booking).where(Booking.booking_reference == booking_reference)
        return await self.session.scalar(stmt)

    async def get_by_session_id(self, session_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.session_id == session_id)
        return await self.session.scalar(stmt)

    async def advance_status(
        self,
        booking_reference: str,
        from_status: BookingStatusEnum,
        to_status: BookingStatusEnum,
    ) -> Booking:
        """Compare-and-swap the status; the row is untouched on mismatch."""
        stmt = (
            update(Booking)
            .where(
                Booking.booking_reference == booking_reference,
                Booking.status == from_status,
            )
            .values(status=to_status, updated_at=utc_now())
            .returning(Booking.id)
        )
        updated_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if updated_id is None:
            current = await self.get_by_reference(booking_reference)
            if current is None:
                raise NotFoundException("Booking not found")
            raise InvalidTransitionException(
                f"Booking {booking_reference} is {current.status}, expected {from_status}",
            )

        booking = await self.get_by_reference(booking_reference)
        if booking is None:
            raise NotFoundException("Booking not found")
        await self.session.refresh(booking)
        return booking
