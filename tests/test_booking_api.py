from __future__ import annotations

from typing import Any

import httpx
import pytest

from coachcarter.core.enums import BookingStatusEnum
from coachcarter.core.metrics import build_metrics_response
from coachcarter.core.security import create_staff_token
from coachcarter.main import app
from coachcarter.modules.booking import router as booking_router
from coachcarter.modules.booking.schemas import (
    LifecycleOutcomeEnum,
    LifecycleResult,
    SessionVerificationRead,
)
from coachcarter.modules.booking.service import (
    get_booking_lifecycle_service,
    get_event_processor,
    get_session_verification_service,
)
from coachcarter.modules.notifications.dispatcher import get_notification_dispatcher
from coachcarter.modules.payments.gateway import get_payment_gateway
from coachcarter.shared.exceptions import (
    AuthenticationException,
    InvalidTransitionException,
    UpstreamQueryException,
)
from tests.fakes import checkout_event, encode_event, make_booking, make_dispatcher


class FakeGateway:
    def __init__(self, event: dict[str, Any] | None = None) -> None:
        self.event = event

    def verify_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if self.event is None or signature != "valid":
            raise AuthenticationException("Webhook signature verification failed")
        return self.event


class RecordingProcessor:
    def __init__(self, result: LifecycleResult) -> None:
        self.result = result
        self.events: list[dict[str, Any]] = []

    async def __call__(self, event: dict[str, Any]) -> LifecycleResult:
        self.events.append(event)
        return self.result


@pytest.fixture
def dispatched(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    calls: list[str] = []

    async def _fake_dispatch(booking_reference: str, _dispatcher) -> None:
        calls.append(booking_reference)

    monkeypatch.setattr(booking_router, "dispatch_booking_outbox", _fake_dispatch)
    app.dependency_overrides[get_notification_dispatcher] = lambda: make_dispatcher()
    yield calls
    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def _staff_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_staff_token('Darren')}"}


def _use_processor(result: LifecycleResult, event: dict[str, Any] | None = None) -> RecordingProcessor:
    processor = RecordingProcessor(result)
    app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway(event or checkout_event())
    app.dependency_overrides[get_event_processor] = lambda: processor
    return processor


@pytest.mark.asyncio
async def test_webhook_acknowledges_new_booking_and_schedules_dispatch(dispatched: list[str]) -> None:
    processor = _use_processor(
        LifecycleResult(
            outcome=LifecycleOutcomeEnum.CREATED,
            booking_reference="CC-PAYG2345",
            status=BookingStatusEnum.PAID_PENDING_SCHEDULING,
        ),
    )

    async with _client() as client:
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=encode_event(checkout_event()),
            headers={"Stripe-Signature": "valid"},
        )

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "created", "booking_reference": "CC-PAYG2345"}
    assert len(processor.events) == 1
    assert dispatched == ["CC-PAYG2345"]
    payload = build_metrics_response().body.decode("utf-8")
    assert 'coachcarter_webhook_events_total{event_type="checkout.session.completed",outcome="created"}' in payload


@pytest.mark.asyncio
async def test_webhook_duplicate_delivery_does_not_dispatch_again(dispatched: list[str]) -> None:
    _use_processor(
        LifecycleResult(
            outcome=LifecycleOutcomeEnum.DUPLICATE,
            booking_reference="CC-PAYG2345",
            status=BookingStatusEnum.PAID_PENDING_SCHEDULING,
        ),
    )

    async with _client() as client:
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=encode_event(checkout_event()),
            headers={"Stripe-Signature": "valid"},
        )

    assert response.status_code == 200
    assert response.json()["outcome"] == "duplicate"
    assert dispatched == []


@pytest.mark.asyncio
async def test_webhook_with_bad_signature_returns_400_and_processes_nothing(dispatched: list[str]) -> None:
    processor = _use_processor(LifecycleResult(outcome=LifecycleOutcomeEnum.CREATED))

    async with _client() as client:
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=encode_event(checkout_event()),
            headers={"Stripe-Signature": "forged"},
        )
        missing = await client.post("/api/v1/webhooks/stripe", content=encode_event(checkout_event()))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "authentication_failed"
    assert missing.status_code == 400
    assert processor.events == []
    assert dispatched == []


class FakeVerificationService:
    def __init__(self, result: SessionVerificationRead | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error

    async def verify(self, session_id: str) -> SessionVerificationRead:
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


@pytest.mark.asyncio
async def test_verify_session_pending_result_omits_empty_fields(dispatched: list[str]) -> None:
    app.dependency_overrides[get_session_verification_service] = lambda: FakeVerificationService(
        SessionVerificationRead(success=True, pending=True, message="Payment confirmed, booking being processed"),
    )

    async with _client() as client:
        response = await client.get("/api/v1/bookings/verify-session", params={"session_id": "sess_1"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "pending": True,
        "message": "Payment confirmed, booking being processed",
    }


@pytest.mark.asyncio
async def test_verify_session_provider_error_returns_generic_502(dispatched: list[str]) -> None:
    app.dependency_overrides[get_session_verification_service] = lambda: FakeVerificationService(
        error=UpstreamQueryException("Unable to verify payment session"),
    )

    async with _client() as client:
        response = await client.get("/api/v1/bookings/verify-session", params={"session_id": "sess_1"})

    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "Unable to verify payment session"}


class FakeLifecycleService:
    def __init__(self, booking=None, error: Exception | None = None) -> None:
        self.booking = booking
        self.error = error
        self.calls: list[tuple] = []

    async def get_booking(self, booking_reference: str):
        return self.booking

    async def advance_status(self, booking_reference, from_status, to_status, actor):
        self.calls.append((booking_reference, from_status, to_status, actor))
        if self.error is not None:
            raise self.error
        self.booking.status = to_status
        return self.booking


@pytest.mark.asyncio
async def test_status_change_requires_staff_token(dispatched: list[str]) -> None:
    service = FakeLifecycleService(make_booking())
    app.dependency_overrides[get_booking_lifecycle_service] = lambda: service

    async with _client() as client:
        response = await client.post(
            "/api/v1/bookings/CC-TEST2345/status",
            json={"from_status": "PAID_PENDING_SCHEDULING", "to_status": "SCHEDULED"},
        )

    assert response.status_code == 403
    assert service.calls == []


@pytest.mark.asyncio
async def test_staff_status_change_returns_redacted_view(dispatched: list[str]) -> None:
    service = FakeLifecycleService(make_booking())
    app.dependency_overrides[get_booking_lifecycle_service] = lambda: service

    async with _client() as client:
        response = await client.post(
            "/api/v1/bookings/CC-TEST2345/status",
            json={"from_status": "PAID_PENDING_SCHEDULING", "to_status": "SCHEDULED"},
            headers=_staff_headers(),
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "SCHEDULED"
    assert "customer_email" not in body
    assert "provisional_licence" not in body
    assert service.calls[0][3] == "Darren"


@pytest.mark.asyncio
async def test_stale_status_change_returns_409(dispatched: list[str]) -> None:
    service = FakeLifecycleService(
        make_booking(),
        error=InvalidTransitionException("Booking CC-TEST2345 is SCHEDULED, expected PAID_PENDING_SCHEDULING"),
    )
    app.dependency_overrides[get_booking_lifecycle_service] = lambda: service

    async with _client() as client:
        response = await client.post(
            "/api/v1/bookings/CC-TEST2345/status",
            json={"from_status": "PAID_PENDING_SCHEDULING", "to_status": "SCHEDULED"},
            headers=_staff_headers(),
        )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_staff_can_read_full_booking(dispatched: list[str]) -> None:
    app.dependency_overrides[get_booking_lifecycle_service] = lambda: FakeLifecycleService(make_booking())

    async with _client() as client:
        response = await client.get("/api/v1/bookings/CC-TEST2345", headers=_staff_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["booking_reference"] == "CC-TEST2345"
    assert body["customer_email"] == "learner@example.com"
    assert body["amount_paid"] == "30.00"


@pytest.mark.asyncio
async def test_webhook_processing_failure_returns_500_without_dispatch(dispatched: list[str]) -> None:
    async def _failing_processor(event: dict[str, Any]) -> LifecycleResult:
        raise RuntimeError("database unavailable")

    app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway(checkout_event("sess_err"))
    app.dependency_overrides[get_event_processor] = lambda: _failing_processor

    # The catch-all handler answers, then the error is re-raised to the server.
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=encode_event(checkout_event("sess_err")),
            headers={"Stripe-Signature": "valid"},
        )

    assert response.status_code == 500
    assert response.json() == {"error": {"code": "internal_error", "message": "Internal server error"}}
    assert dispatched == []
    payload = build_metrics_response().body.decode("utf-8")
    assert 'coachcarter_webhook_events_total{event_type="checkout.session.completed",outcome="error"}' in payload
