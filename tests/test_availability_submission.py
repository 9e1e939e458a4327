from __future__ import annotations

import pytest
from pydantic import ValidationError

from coachcarter.core.enums import NotificationChannelEnum, NotificationStatusEnum
from coachcarter.modules.availability.schemas import AvailabilitySubmission
from coachcarter.modules.availability.service import AvailabilityService
from coachcarter.shared.exceptions import NotFoundException
from tests.fakes import (
    STAFF_EMAIL,
    FakeBookingRepository,
    FakeChatClient,
    FakeEmailSender,
    FakeNotificationsRepository,
    make_booking,
    make_dispatcher,
)


def make_service(
    email_sender: FakeEmailSender,
    chat_client: FakeChatClient,
) -> tuple[AvailabilityService, FakeNotificationsRepository]:
    notifications_repo = FakeNotificationsRepository()
    service = AvailabilityService(
        booking_repository=FakeBookingRepository([make_booking("CC-PASS2345")]),  # type: ignore[arg-type]
        notifications_repository=notifications_repo,  # type: ignore[arg-type]
        dispatcher=make_dispatcher(email_sender, chat_client),
    )
    return service, notifications_repo


def submission(**overrides) -> AvailabilitySubmission:
    data = {
        "booking_reference": "CC-PASS2345",
        "email": "Learner@Example.com",
        "availability": {
            "mon_morning": "available",
            "mon_evening": "preferred",
            "sat_morning": "preferred",
            "sun_morning": "unavailable",
        },
        "frequency_preference": "twice a week",
        "notes": "Prefer pickup from work",
    }
    data.update(overrides)
    return AvailabilitySubmission.model_validate(data)


@pytest.mark.asyncio
async def test_submission_notifies_staff_chat_and_customer() -> None:
    email_sender = FakeEmailSender()
    chat_client = FakeChatClient()
    service, notifications_repo = make_service(email_sender, chat_client)

    results = await service.submit(submission())

    assert {result.status for result in results} == {NotificationStatusEnum.SENT}
    staff = next(message for message in email_sender.sent if message.to == STAFF_EMAIL)
    assert "3 total" in staff.html
    assert "(2 preferred)" in staff.html
    assert "twice a week" in staff.html
    assert chat_client.posted[0]["text"] == "Availability received for CC-PASS2345: 3 slots (2 preferred)"
    assert email_sender.subjects_to("learner@example.com") == ["Availability received — Reference: CC-PASS2345"]
    assert (
        notifications_repo.deliveries[("CC-PASS2345", NotificationChannelEnum.AVAILABILITY_STAFF)].status
        == NotificationStatusEnum.SENT
    )


@pytest.mark.asyncio
async def test_lowercase_reference_is_accepted() -> None:
    service, _ = make_service(FakeEmailSender(), FakeChatClient())

    results = await service.submit(submission(booking_reference="cc-pass2345"))

    assert len(results) == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"email": "someone.else@example.com"},
        {"booking_reference": "CC-NOPE2345"},
    ],
)
@pytest.mark.asyncio
async def test_unknown_booking_or_wrong_email_is_not_found(overrides: dict) -> None:
    email_sender = FakeEmailSender()
    service, _ = make_service(email_sender, FakeChatClient())

    with pytest.raises(NotFoundException):
        await service.submit(submission(**overrides))
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_staff_email_failure_still_confirms_to_customer() -> None:
    email_sender = FakeEmailSender(fail_for={STAFF_EMAIL})
    service, notifications_repo = make_service(email_sender, FakeChatClient(enabled=False))

    await service.submit(submission())

    assert len(email_sender.subjects_to("learner@example.com")) == 1
    staff_delivery = notifications_repo.deliveries[("CC-PASS2345", NotificationChannelEnum.AVAILABILITY_STAFF)]
    chat_delivery = notifications_repo.deliveries[("CC-PASS2345", NotificationChannelEnum.AVAILABILITY_CHAT)]
    assert staff_delivery.status == NotificationStatusEnum.FAILED
    assert chat_delivery.status == NotificationStatusEnum.SKIPPED


def test_unknown_slot_choice_is_rejected() -> None:
    with pytest.raises(ValidationError):
        submission(availability={"mon_morning": "maybe"})
