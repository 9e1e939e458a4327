from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from coachcarter.core.enums import OutboxStatusEnum
from coachcarter.modules.scheduling.service import AVAILABILITY_REQUEST_DUE, DelayedActionScheduler
from coachcarter.shared.utils import REFERENCE_ALPHABET, first_name, generate_booking_reference
from tests.fakes import FakeAuditRepository

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_schedule_once_does_not_create_a_second_pending_action() -> None:
    audit_repo = FakeAuditRepository()
    scheduler = DelayedActionScheduler(audit_repo, now_provider=lambda: NOW)  # type: ignore[arg-type]

    first = await scheduler.schedule_once("CC-PASS2345", timedelta(minutes=5))
    second = await scheduler.schedule_once("CC-PASS2345", timedelta(minutes=30))

    assert first is second
    assert len(audit_repo.events_of(AVAILABILITY_REQUEST_DUE)) == 1
    assert first.available_at == NOW + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_cancel_pending_only_touches_that_booking() -> None:
    audit_repo = FakeAuditRepository()
    scheduler = DelayedActionScheduler(audit_repo, now_provider=lambda: NOW)  # type: ignore[arg-type]
    mine = await scheduler.schedule_once("CC-MINE2345", timedelta(minutes=5))
    other = await scheduler.schedule_once("CC-OTHR2345", timedelta(minutes=5))

    canceled = await scheduler.cancel_pending("CC-MINE2345", reason="Booking is SCHEDULED")

    assert canceled == 1
    assert mine.status == OutboxStatusEnum.CANCELED
    assert other.status == OutboxStatusEnum.PENDING
    assert await scheduler.cancel_pending("CC-MINE2345", reason="again") == 0


def test_booking_reference_format() -> None:
    references = {generate_booking_reference() for _ in range(200)}

    assert len(references) > 190
    for reference in references:
        assert reference.startswith("CC-")
        assert len(reference) == 11
        assert set(reference[3:]) <= set(REFERENCE_ALPHABET)
    assert not set("01IO") & set(REFERENCE_ALPHABET)


@pytest.mark.parametrize(
    ("full_name", "expected"),
    [("Sam Learner", "Sam"), ("  Alex  ", "Alex"), (None, "there"), ("", "there")],
)
def test_first_name(full_name: str | None, expected: str) -> None:
    assert first_name(full_name) == expected
