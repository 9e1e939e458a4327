"""Delayed follow-up actions backed by the outbox table.

Actions are rows, not in-process timers, so a restart mid-delay loses
nothing. The outbox sweep executes them once they are due.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from coachcarter.modules.audit.models import OutboxEvent
from coachcarter.modules.audit.repository import AuditRepository
from coachcarter.shared.utils import utc_now

logger = logging.getLogger(__name__)

BOOKING_AGGREGATE = "booking"
AVAILABILITY_REQUEST_DUE = "booking.availability_request.due"


class DelayedActionScheduler:
    """Persist one-shot follow-up actions for bookings."""

    def __init__(self, audit_repository: AuditRepository, *, now_provider=utc_now) -> None:
        self.audit_repository = audit_repository
        self.now_provider = now_provider

    async def schedule_once(
        self,
        booking_reference: str,
        delay: timedelta,
        event_type: str = AVAILABILITY_REQUEST_DUE,
    ) -> OutboxEvent:
        """Schedule an action no earlier than ``delay`` from now.

        A still-pending action of the same type for the booking is returned
        as is.
        """
        existing = await self.audit_repository.get_pending_outbox_event(booking_reference, event_type)
        if existing is not None:
            return existing

        due_at = self.now_provider() + delay
        event = await self.audit_repository.create_outbox_event(
            aggregate_type=BOOKING_AGGREGATE,
            aggregate_id=booking_reference,
            event_type=event_type,
            payload={"booking_reference": booking_reference},
            available_at=due_at,
        )
        logger.info("Scheduled %s for booking %s at %s", event_type, booking_reference, due_at.isoformat())
        return event

    async def cancel_pending(
        self,
        booking_reference: str,
        reason: str,
        event_type: str = AVAILABILITY_REQUEST_DUE,
    ) -> int:
        """Cancel pending actions for a booking that no longer needs them."""
        canceled = await self.audit_repository.cancel_pending_outbox(booking_reference, event_type, reason)
        if canceled:
            logger.info("Canceled %d pending %s for booking %s", canceled, event_type, booking_reference)
        return canceled
