"""Booking lifecycle processing and session verification."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from fastapi import Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from coachcarter.core.config import get_settings
from coachcarter.core.database import get_db_session, session_scope
from coachcarter.core.enums import BookingStatusEnum, PackageTypeEnum
from coachcarter.modules.audit.repository import AuditRepository
from coachcarter.modules.booking.models import Booking
from coachcarter.modules.booking.repository import BookingRepository
from coachcarter.modules.booking.schemas import (
    LifecycleOutcomeEnum,
    LifecycleResult,
    SessionVerificationRead,
    package_display_name,
)
from coachcarter.modules.payments.gateway import PaymentGateway, get_payment_gateway
from coachcarter.modules.payments.schemas import (
    BOOKING_EVENT_TYPES,
    AWAITING_PAYMENT,
    CHECKOUT_COMPLETED,
    CheckoutCompletion,
)
from coachcarter.modules.scheduling.service import BOOKING_AGGREGATE, DelayedActionScheduler
from coachcarter.shared.exceptions import (
    AuthenticationException,
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
)
from coachcarter.shared.utils import generate_booking_reference

logger = logging.getLogger(__name__)
settings = get_settings()

BOOKING_CREATED = "booking.created"

ALLOWED_TRANSITIONS: dict[BookingStatusEnum, frozenset[BookingStatusEnum]] = {
    BookingStatusEnum.PAID_PENDING_VERIFICATION: frozenset({BookingStatusEnum.PAID_PENDING_SCHEDULING}),
    BookingStatusEnum.PAID_PENDING_SCHEDULING: frozenset({BookingStatusEnum.SCHEDULED}),
    BookingStatusEnum.SCHEDULED: frozenset(),
}


def initial_status_for(package_type: PackageTypeEnum) -> BookingStatusEnum:
    """Derive the creation status from the package tier alone."""
    if package_type == PackageTypeEnum.PASS_GUARANTEE:
        return BookingStatusEnum.PAID_PENDING_VERIFICATION
    return BookingStatusEnum.PAID_PENDING_SCHEDULING


class BookingLifecycleService:
    """Turns verified checkout events into bookings, exactly once per session."""

    def __init__(
        self,
        repository: BookingRepository,
        audit_repository: AuditRepository,
        scheduler: DelayedActionScheduler,
        *,
        followup_delay: timedelta | None = None,
        max_reference_attempts: int | None = None,
        reference_factory: Callable[[], str] = generate_booking_reference,
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository
        self.scheduler = scheduler
        if followup_delay is None:
            followup_delay = timedelta(minutes=settings.availability_followup_delay_minutes)
        if max_reference_attempts is None:
            max_reference_attempts = settings.booking_reference_max_attempts
        self.followup_delay = followup_delay
        self.max_reference_attempts = max_reference_attempts
        self.reference_factory = reference_factory

    async def handle_event(self, event: dict[str, Any]) -> LifecycleResult:
        """Process one verified provider event."""
        event_type = str(event.get("type"))
        if event_type not in BOOKING_EVENT_TYPES:
            logger.debug("Ignoring provider event %s (%s)", event.get("id"), event_type)
            return LifecycleResult(outcome=LifecycleOutcomeEnum.IGNORED)

        session_object = (event.get("data") or {}).get("object") or {}
        try:
            completion = CheckoutCompletion.from_session(session_object)
        except (ValueError, ValidationError) as exc:
            raise AuthenticationException(f"Malformed checkout session payload: {exc}") from exc

        if event_type == CHECKOUT_COMPLETED and completion.payment_status == AWAITING_PAYMENT:
            logger.info(
                "Checkout session %s completed with payment status %s; waiting for payment",
                completion.session_id,
                completion.payment_status,
            )
            return LifecycleResult(outcome=LifecycleOutcomeEnum.IGNORED)

        existing = await self.repository.get_by_session_id(completion.session_id)
        if existing is not None:
            return self._duplicate(existing)

        return await self._create_booking(completion)

    async def _create_booking(self, completion: CheckoutCompletion) -> LifecycleResult:
        status = initial_status_for(completion.package_type)

        for attempt in range(1, self.max_reference_attempts + 1):
            booking = Booking(
                session_id=completion.session_id,
                booking_reference=self.reference_factory(),
                customer_email=completion.customer_email,
                customer_name=completion.customer_name,
                package_type=completion.package_type,
                package_hours=completion.package_hours,
                amount_paid=completion.amount_paid,
                currency=completion.currency,
                provisional_licence=completion.provisional_licence,
                claimed_test_status=completion.claimed_test_status,
                claimed_test_reference=completion.claimed_test_reference,
                claimed_test_centre=completion.claimed_test_centre,
                status=status,
            )
            try:
                booking = await self.repository.create(booking)
            except ConflictException as exc:
                if exc.field == "session_id":
                    existing = await self.repository.get_by_session_id(completion.session_id)
                    if existing is None:
                        raise
                    return self._duplicate(existing)
                logger.warning(
                    "Booking reference collision on attempt %d for session %s",
                    attempt,
                    completion.session_id,
                )
                continue
            break
        else:
            raise ConflictException(
                "Could not allocate a unique booking reference",
                field="booking_reference",
            )

        await self.audit_repository.create_audit_log(
            actor="system",
            action="booking.create",
            entity_type="booking",
            entity_id=booking.booking_reference,
            payload={
                "session_id": booking.session_id,
                "package_type": str(booking.package_type),
                "amount_paid": str(booking.amount_paid),
                "status": str(booking.status),
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type=BOOKING_AGGREGATE,
            aggregate_id=booking.booking_reference,
            event_type=BOOKING_CREATED,
            payload={"booking_reference": booking.booking_reference},
        )
        if status == BookingStatusEnum.PAID_PENDING_VERIFICATION:
            await self.scheduler.schedule_once(booking.booking_reference, self.followup_delay)

        logger.info(
            "Booking %s created for session %s (%s, %s)",
            booking.booking_reference,
            booking.session_id,
            booking.package_type,
            booking.status,
        )
        return LifecycleResult(
            outcome=LifecycleOutcomeEnum.CREATED,
            booking_reference=booking.booking_reference,
            status=booking.status,
        )

    @staticmethod
    def _duplicate(existing: Booking) -> LifecycleResult:
        logger.info(
            "Duplicate delivery for session %s; booking %s already exists",
            existing.session_id,
            existing.booking_reference,
        )
        return LifecycleResult(
            outcome=LifecycleOutcomeEnum.DUPLICATE,
            booking_reference=existing.booking_reference,
            status=existing.status,
        )

    async def get_booking(self, booking_reference: str) -> Booking:
        booking = await self.repository.get_by_reference(booking_reference)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def advance_status(
        self,
        booking_reference: str,
        from_status: BookingStatusEnum,
        to_status: BookingStatusEnum,
        actor: str,
    ) -> Booking:
        """Move a booking forward in the staff workflow."""
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            logger.warning(
                "Rejected transition %s -> %s for booking %s by %s",
                from_status,
                to_status,
                booking_reference,
                actor,
            )
            raise InvalidTransitionException(f"Invalid booking status transition: {from_status} -> {to_status}")

        try:
            booking = await self.repository.advance_status(booking_reference, from_status, to_status)
        except InvalidTransitionException:
            logger.warning("Stale status for booking %s: expected %s", booking_reference, from_status)
            raise

        await self.audit_repository.create_audit_log(
            actor=actor,
            action="booking.status.advance",
            entity_type="booking",
            entity_id=booking_reference,
            payload={"from_status": str(from_status), "to_status": str(to_status)},
        )
        if to_status == BookingStatusEnum.SCHEDULED:
            await self.scheduler.cancel_pending(booking_reference, reason=f"Booking is {to_status}")
        return booking


class SessionVerificationService:
    """Read path for clients polling after checkout."""

    def __init__(self, gateway: PaymentGateway, repository: BookingRepository) -> None:
        self.gateway = gateway
        self.repository = repository

    async def verify(self, session_id: str) -> SessionVerificationRead:
        """Report payment status and the booking summary when available.

        ``UpstreamQueryException`` from the provider propagates to the caller.
        """
        provider_session = await self.gateway.retrieve_session(session_id)
        if not provider_session.is_paid:
            return SessionVerificationRead(success=False, error="Payment not completed")

        booking = await self.repository.get_by_session_id(session_id)
        if booking is None:
            return SessionVerificationRead(
                success=True,
                pending=True,
                message="Payment confirmed, booking being processed",
            )

        return SessionVerificationRead(
            success=True,
            booking_ref=booking.booking_reference,
            package_name=package_display_name(booking.package_type, booking.package_hours),
            package_type=booking.package_type,
            amount=booking.amount_paid,
        )


def build_lifecycle_service(session: AsyncSession) -> BookingLifecycleService:
    audit_repository = AuditRepository(session)
    return BookingLifecycleService(
        repository=BookingRepository(session),
        audit_repository=audit_repository,
        scheduler=DelayedActionScheduler(audit_repository),
    )


async def process_provider_event(event: dict[str, Any]) -> LifecycleResult:
    """Handle one event in its own transaction; returns after commit."""
    async with session_scope() as session:
        return await build_lifecycle_service(session).handle_event(event)


EventProcessor = Callable[[dict[str, Any]], Awaitable[LifecycleResult]]


def get_event_processor() -> EventProcessor:
    """Dependency provider for the webhook unit of work."""
    return process_provider_event


async def get_booking_lifecycle_service(
    session: AsyncSession = Depends(get_db_session),
) -> BookingLifecycleService:
    """Dependency provider for staff lifecycle operations."""
    return build_lifecycle_service(session)


async def get_session_verification_service(
    session: AsyncSession = Depends(get_db_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> SessionVerificationService:
    """Dependency provider for session verification."""
    return SessionVerificationService(gateway=gateway, repository=BookingRepository(session))
