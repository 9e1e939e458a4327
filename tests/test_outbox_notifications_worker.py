from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from coachcarter.core.enums import (
    BookingStatusEnum,
    NotificationChannelEnum,
    NotificationStatusEnum,
    OutboxStatusEnum,
    PackageTypeEnum,
)
from coachcarter.modules.booking.service import BOOKING_CREATED
from coachcarter.modules.notifications.outbox_worker import NotificationsOutboxWorker
from coachcarter.modules.scheduling.service import AVAILABILITY_REQUEST_DUE, BOOKING_AGGREGATE
from tests.fakes import (
    STAFF_EMAIL,
    FakeAuditRepository,
    FakeBookingRepository,
    FakeChatClient,
    FakeEmailSender,
    FakeNotificationsRepository,
    FakeOutboxEvent,
    make_booking,
    make_dispatcher,
)

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def outbox_event(
    booking_reference: str,
    event_type: str,
    *,
    available_at: datetime = NOW,
) -> FakeOutboxEvent:
    return FakeOutboxEvent(
        id=uuid4(),
        aggregate_type=BOOKING_AGGREGATE,
        aggregate_id=booking_reference,
        event_type=event_type,
        payload={"booking_reference": booking_reference},
        available_at=available_at,
        occurred_at=NOW - timedelta(minutes=5),
        updated_at=NOW - timedelta(minutes=5),
    )


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_worker(
    events: list[FakeOutboxEvent],
    bookings: list,
    *,
    email_sender: FakeEmailSender | None = None,
    chat_client: FakeChatClient | None = None,
    clock: Clock | None = None,
    notifications_repo: FakeNotificationsRepository | None = None,
) -> tuple[NotificationsOutboxWorker, FakeAuditRepository, FakeNotificationsRepository, FakeEmailSender]:
    notifications_repo = notifications_repo or FakeNotificationsRepository()
    audit_repo = FakeAuditRepository(events, notifications_repo)
    sender = email_sender or FakeEmailSender()
    worker = NotificationsOutboxWorker(
        audit_repository=audit_repo,  # type: ignore[arg-type]
        notifications_repository=notifications_repo,  # type: ignore[arg-type]
        booking_repository=FakeBookingRepository(bookings),  # type: ignore[arg-type]
        dispatcher=make_dispatcher(sender, chat_client or FakeChatClient()),
        now_provider=clock or Clock(NOW),
        base_backoff_seconds=30,
    )
    return worker, audit_repo, notifications_repo, sender


@pytest.mark.asyncio
async def test_booking_created_event_dispatches_burst_and_records_deliveries() -> None:
    event = outbox_event("CC-PAYG2345", BOOKING_CREATED)
    worker, _, notifications_repo, sender = make_worker([event], [make_booking("CC-PAYG2345")])

    stats = await worker.run_once()

    assert stats == {"requeued": 0, "processed": 1, "failed": 0, "canceled": 0, "dispatched": 3}
    assert event.status == OutboxStatusEnum.PROCESSED
    assert event.processed_at == NOW
    assert len(sender.subjects_to("learner@example.com")) == 1
    assert len(sender.subjects_to(STAFF_EMAIL)) == 1
    delivery = notifications_repo.deliveries[("CC-PAYG2345", NotificationChannelEnum.CUSTOMER_EMAIL)]
    assert delivery.status == NotificationStatusEnum.SENT
    assert delivery.sent_at == NOW


@pytest.mark.asyncio
async def test_resumed_burst_skips_channels_already_sent() -> None:
    event = outbox_event("CC-PAYG2345", BOOKING_CREATED)
    worker, _, notifications_repo, sender = make_worker([event], [make_booking("CC-PAYG2345")])
    await notifications_repo.record_delivery(
        "CC-PAYG2345",
        NotificationChannelEnum.CUSTOMER_EMAIL,
        NotificationStatusEnum.SENT,
        "learner@example.com",
        "Booking confirmed",
        None,
        NOW - timedelta(minutes=1),
    )

    stats = await worker.run_once()

    assert stats["dispatched"] == 2
    assert sender.subjects_to("learner@example.com") == []
    assert len(sender.subjects_to(STAFF_EMAIL)) == 1


@pytest.mark.asyncio
async def test_channel_failure_is_recorded_without_failing_event() -> None:
    event = outbox_event("CC-PAYG2345", BOOKING_CREATED)
    worker, _, notifications_repo, _ = make_worker(
        [event],
        [make_booking("CC-PAYG2345")],
        email_sender=FakeEmailSender(fail_for={STAFF_EMAIL}),
    )

    stats = await worker.run_once()

    assert stats["processed"] == 1
    assert event.status == OutboxStatusEnum.PROCESSED
    delivery = notifications_repo.deliveries[("CC-PAYG2345", NotificationChannelEnum.STAFF_EMAIL)]
    assert delivery.status == NotificationStatusEnum.FAILED
    assert delivery.sent_at is None
    assert "mailbox unavailable" in (delivery.error_message or "")


@pytest.mark.asyncio
async def test_followup_is_not_sent_before_it_is_due_and_fires_exactly_once() -> None:
    booking = make_booking(
        "CC-PASS2345",
        package_type=PackageTypeEnum.PASS_GUARANTEE,
        status=BookingStatusEnum.PAID_PENDING_VERIFICATION,
    )
    event = outbox_event("CC-PASS2345", AVAILABILITY_REQUEST_DUE, available_at=NOW + timedelta(minutes=5))
    clock = Clock(NOW)
    worker, _, notifications_repo, sender = make_worker([event], [booking], clock=clock)

    early = await worker.run_once()
    assert early["processed"] == 0
    assert sender.sent == []

    clock.now = NOW + timedelta(minutes=5)
    due = await worker.run_once()
    again = await worker.run_once()

    assert due["processed"] == 1
    assert again["processed"] == 0
    assert len(sender.sent) == 1
    assert sender.sent[0].subject == "Submit your availability — Reference: CC-PASS2345"
    assert event.processed_at == NOW + timedelta(minutes=5)
    assert (
        notifications_repo.deliveries[("CC-PASS2345", NotificationChannelEnum.AVAILABILITY_REQUEST)].status
        == NotificationStatusEnum.SENT
    )


@pytest.mark.asyncio
async def test_followup_for_scheduled_booking_is_canceled() -> None:
    booking = make_booking("CC-PASS2345", status=BookingStatusEnum.SCHEDULED)
    event = outbox_event("CC-PASS2345", AVAILABILITY_REQUEST_DUE)
    worker, _, _, sender = make_worker([event], [booking])

    stats = await worker.run_once()

    assert stats["canceled"] == 1
    assert stats["processed"] == 0
    assert event.status == OutboxStatusEnum.CANCELED
    assert sender.sent == []


@pytest.mark.asyncio
async def test_missing_booking_marks_event_failed_and_requeues_after_backoff() -> None:
    event = outbox_event("CC-GONE2345", BOOKING_CREATED)
    clock = Clock(NOW)
    worker, _, _, _ = make_worker([event], [], clock=clock)

    first = await worker.run_once()
    assert first["failed"] == 1
    assert event.status == OutboxStatusEnum.FAILED
    assert event.retries == 1
    assert "Booking not found" in (event.error_message or "")

    event.updated_at = NOW
    clock.now = NOW + timedelta(seconds=10)
    too_early = await worker.run_once()
    assert too_early["requeued"] == 0
    assert event.status == OutboxStatusEnum.FAILED

    clock.now = NOW + timedelta(seconds=31)
    retried = await worker.run_once()
    assert retried["requeued"] == 1
    assert retried["failed"] == 1
    assert event.retries == 2


@pytest.mark.asyncio
async def test_run_for_single_booking_leaves_other_events_alone() -> None:
    mine = outbox_event("CC-MINE2345", BOOKING_CREATED)
    other = outbox_event("CC-OTHR2345", BOOKING_CREATED)
    worker, _, _, _ = make_worker(
        [mine, other],
        [make_booking("CC-MINE2345", session_id="s1"), make_booking("CC-OTHR2345", session_id="s2")],
    )

    stats = await worker.run_once(aggregate_id="CC-MINE2345")

    assert stats["processed"] == 1
    assert mine.status == OutboxStatusEnum.PROCESSED
    assert other.status == OutboxStatusEnum.PENDING


@pytest.mark.asyncio
async def test_storage_error_on_one_event_does_not_undo_the_rest_of_the_batch() -> None:
    delivered = outbox_event("CC-GOOD2345", BOOKING_CREATED)
    broken = outbox_event("CC-BAD02345", BOOKING_CREATED, available_at=NOW + timedelta(seconds=1))
    worker, audit_repo, notifications_repo, sender = make_worker(
        [delivered, broken],
        [make_booking("CC-GOOD2345", session_id="s1"), make_booking("CC-BAD02345", session_id="s2")],
        clock=Clock(NOW + timedelta(seconds=1)),
        notifications_repo=FakeNotificationsRepository(fail_for={"CC-BAD02345"}),
    )

    stats = await worker.run_once()

    assert stats["processed"] == 1
    assert stats["failed"] == 1
    assert delivered.status == OutboxStatusEnum.PROCESSED
    assert broken.status == OutboxStatusEnum.FAILED
    assert broken.retries == 1
    assert "deliveries table unavailable" in (broken.error_message or "")
    assert audit_repo.rollbacks == 1
    assert {reference for reference, _ in notifications_repo.deliveries} == {"CC-GOOD2345"}
    assert len(sender.subjects_to(STAFF_EMAIL)) == 2

    # The next sweep resumes only the failed event; the first customer is not notified twice.
    sender.sent.clear()
    notifications_repo.fail_for.clear()
    broken.updated_at = NOW
    worker.now_provider = Clock(NOW + timedelta(minutes=5))
    retried = await worker.run_once()

    assert retried["requeued"] == 1
    assert retried["processed"] == 1
    assert sender.subjects_to("learner@example.com") == ["Booking confirmed — Reference: CC-BAD02345"]
    assert delivered.status == OutboxStatusEnum.PROCESSED
