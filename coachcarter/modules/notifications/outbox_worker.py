"""Outbox consumer that turns due booking events into notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from coachcarter.core.database import session_scope
from coachcarter.core.enums import BookingStatusEnum, NotificationStatusEnum
from coachcarter.core.metrics import record_outbox_event
from coachcarter.modules.audit.models import OutboxEvent
from coachcarter.modules.audit.repository import AuditRepository
from coachcarter.modules.booking.models import Booking
from coachcarter.modules.booking.repository import BookingRepository
from coachcarter.modules.booking.service import BOOKING_CREATED
from coachcarter.modules.notifications.dispatcher import ChannelResult, NotificationDispatcher
from coachcarter.modules.notifications.repository import NotificationsRepository
from coachcarter.modules.scheduling.service import AVAILABILITY_REQUEST_DUE
from coachcarter.shared.utils import utc_now

logger = logging.getLogger(__name__)


class NotificationsOutboxWorker:
    """Process due outbox events: booking bursts and delayed follow-ups."""

    def __init__(
        self,
        audit_repository: AuditRepository,
        notifications_repository: NotificationsRepository,
        booking_repository: BookingRepository,
        dispatcher: NotificationDispatcher,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.notifications_repository = notifications_repository
        self.booking_repository = booking_repository
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self, aggregate_id: str | None = None) -> dict[str, int]:
        """Run one processing cycle, optionally for a single booking."""
        stats = {"requeued": 0, "processed": 0, "failed": 0, "canceled": 0, "dispatched": 0}
        if aggregate_id is None:
            stats["requeued"] = await self._requeue_retryable_failed_events()

        events = await self.audit_repository.claim_due_outbox(
            now=self.now_provider(),
            limit=self.batch_size,
            aggregate_id=aggregate_id,
        )
        for event in events:
            event_id, event_type = event.id, event.event_type
            try:
                # A failure rolls back this event's delivery writes only; the
                # status markers of events handled earlier in the batch survive.
                async with self.audit_repository.savepoint():
                    cancel_reason = await self._handle_event(event, stats)
            except Exception as exc:
                logger.exception("Outbox event %s (%s) failed", event_id, event_type)
                await self.audit_repository.mark_outbox_failed(event, str(exc))
                record_outbox_event(event_type, "failed")
                stats["failed"] += 1
                continue

            if cancel_reason is not None:
                await self.audit_repository.mark_outbox_canceled(event, cancel_reason)
                outcome = "canceled"
            else:
                await self.audit_repository.mark_outbox_processed(event, self.now_provider())
                outcome = "processed"
            record_outbox_event(event_type, outcome)
            stats[outcome] += 1
        return stats

    async def _handle_event(self, event: OutboxEvent, stats: dict[str, int]) -> str | None:
        """Execute one event; returns a reason when it should be canceled instead."""
        if event.event_type == BOOKING_CREATED:
            stats["dispatched"] += await self._handle_booking_created(event)
        elif event.event_type == AVAILABILITY_REQUEST_DUE:
            booking = await self._load_booking(event)
            if booking.status == BookingStatusEnum.SCHEDULED:
                return f"Booking is {booking.status}"
            result = await self.dispatcher.send_availability_request(booking)
            await self._record(booking.booking_reference, result)
            stats["dispatched"] += 1
        else:
            logger.warning("No handler for outbox event type %s", event.event_type)
        return None

    async def _handle_booking_created(self, event: OutboxEvent) -> int:
        booking = await self._load_booking(event)
        # Channels already delivered by an interrupted earlier attempt.
        done = await self.notifications_repository.list_sent_channels(booking.booking_reference)
        results = await self.dispatcher.dispatch_booking_created(booking, skip_channels=done)
        for result in results:
            await self._record(booking.booking_reference, result)
        return len(results)

    async def _load_booking(self, event: OutboxEvent) -> Booking:
        booking_reference = (event.payload or {}).get("booking_reference") or event.aggregate_id
        booking = await self.booking_repository.get_by_reference(booking_reference)
        if booking is None:
            raise ValueError(f"Booking not found: {booking_reference}")
        return booking

    async def _record(self, booking_reference: str, result: ChannelResult) -> None:
        await self.notifications_repository.record_delivery(
            booking_reference=booking_reference,
            channel=result.channel,
            status=result.status,
            recipient=result.recipient,
            subject=result.subject,
            error_message=result.error,
            sent_at=self.now_provider() if result.status == NotificationStatusEnum.SENT else None,
        )

    async def _requeue_retryable_failed_events(self) -> int:
        now = self.now_provider()
        failed_events = await self.audit_repository.list_failed_outbox(
            limit=self.batch_size,
            max_retries=self.max_retries,
        )
        requeued = 0
        for event in failed_events:
            if self._is_backoff_elapsed(event, now):
                await self.audit_repository.mark_outbox_pending(event)
                requeued += 1
        return requeued

    def _is_backoff_elapsed(self, event: OutboxEvent, now: datetime) -> bool:
        retries = max(event.retries, 1)
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.base_backoff_seconds * (2 ** (retries - 1)),
        )
        last_attempt_at = event.updated_at or event.occurred_at
        return now >= last_attempt_at + timedelta(seconds=backoff_seconds)


def build_outbox_worker(session, dispatcher: NotificationDispatcher, **options) -> NotificationsOutboxWorker:
    return NotificationsOutboxWorker(
        audit_repository=AuditRepository(session),
        notifications_repository=NotificationsRepository(session),
        booking_repository=BookingRepository(session),
        dispatcher=dispatcher,
        **options,
    )


async def dispatch_booking_outbox(booking_reference: str, dispatcher: NotificationDispatcher) -> None:
    """Run the due events of one booking right after its creation commits.

    Anything left behind here is picked up by the periodic sweep.
    """
    try:
        async with session_scope() as session:
            stats = await build_outbox_worker(session, dispatcher).run_once(aggregate_id=booking_reference)
    except Exception:
        logger.exception("Immediate notification dispatch failed for booking %s", booking_reference)
        return
    logger.info("Immediate dispatch for booking %s: %s", booking_reference, stats)
