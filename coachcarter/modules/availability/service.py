"""Availability submission business logic."""

from __future__ import annotations

import logging
from collections import Counter

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coachcarter.core.database import get_db_session
from coachcarter.core.enums import AvailabilityChoiceEnum, NotificationStatusEnum
from coachcarter.modules.availability.schemas import AvailabilitySubmission
from coachcarter.modules.booking.repository import BookingRepository
from coachcarter.modules.notifications.dispatcher import (
    ChannelResult,
    NotificationDispatcher,
    get_notification_dispatcher,
)
from coachcarter.modules.notifications.repository import NotificationsRepository
from coachcarter.shared.exceptions import NotFoundException
from coachcarter.shared.utils import utc_now

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Relay a customer's weekly availability to staff."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        notifications_repository: NotificationsRepository,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.booking_repository = booking_repository
        self.notifications_repository = notifications_repository
        self.dispatcher = dispatcher

    async def submit(self, payload: AvailabilitySubmission) -> list[ChannelResult]:
        booking = await self.booking_repository.get_by_reference(payload.booking_reference.strip().upper())
        # Same error for unknown reference and wrong email.
        if booking is None or booking.customer_email.lower() != str(payload.email).lower():
            raise NotFoundException("Booking not found")

        counts = Counter(payload.availability.values())
        available_slots = counts[AvailabilityChoiceEnum.AVAILABLE]
        preferred_slots = counts[AvailabilityChoiceEnum.PREFERRED]

        results = await self.dispatcher.dispatch_availability_received(
            booking,
            available_slots=available_slots,
            preferred_slots=preferred_slots,
            frequency_preference=payload.frequency_preference,
            notes=payload.notes,
        )
        now = utc_now()
        for result in results:
            await self.notifications_repository.record_delivery(
                booking_reference=booking.booking_reference,
                channel=result.channel,
                status=result.status,
                recipient=result.recipient,
                subject=result.subject,
                error_message=result.error,
                sent_at=now if result.status == NotificationStatusEnum.SENT else None,
            )
        logger.info(
            "Availability received for booking %s: %d available, %d preferred",
            booking.booking_reference,
            available_slots,
            preferred_slots,
        )
        return results


async def get_availability_service(
    session: AsyncSession = Depends(get_db_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AvailabilityService:
    """Dependency provider for availability submissions."""
    return AvailabilityService(
        booking_repository=BookingRepository(session),
        notifications_repository=NotificationsRepository(session),
        dispatcher=dispatcher,
    )
