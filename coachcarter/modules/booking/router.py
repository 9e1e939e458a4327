"""Booking API router: provider webhook, session polling and staff workflow."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from coachcarter.core.metrics import record_webhook_event
from coachcarter.core.security import get_current_staff
from coachcarter.modules.booking.schemas import (
    BookingRead,
    BookingStatusAdvance,
    BookingStatusRead,
    SessionVerificationRead,
    WebhookAck,
)
from coachcarter.modules.booking.service import (
    BookingLifecycleService,
    EventProcessor,
    SessionVerificationService,
    get_booking_lifecycle_service,
    get_event_processor,
    get_session_verification_service,
)
from coachcarter.modules.notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from coachcarter.modules.notifications.outbox_worker import dispatch_booking_outbox
from coachcarter.modules.payments.gateway import PaymentGateway, get_payment_gateway
from coachcarter.shared.exceptions import AuthenticationException, UpstreamQueryException

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
router = APIRouter(prefix="/bookings", tags=["bookings"])


@webhook_router.post("/stripe", response_model=WebhookAck)
async def receive_stripe_event(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    processor: EventProcessor = Depends(get_event_processor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> WebhookAck:
    """Verify, persist and acknowledge a checkout event; notify after commit."""
    payload = await request.body()
    try:
        event = gateway.verify_event(payload, stripe_signature)
    except AuthenticationException:
        record_webhook_event("unverified", "rejected")
        raise

    event_type = str(event.get("type"))
    try:
        result = await processor(event)
    except AuthenticationException:
        record_webhook_event(event_type, "rejected")
        raise
    except Exception:
        record_webhook_event(event_type, "error")
        raise

    record_webhook_event(event_type, result.outcome)
    if result.created and result.booking_reference:
        background_tasks.add_task(dispatch_booking_outbox, result.booking_reference, dispatcher)
    return WebhookAck(outcome=result.outcome, booking_reference=result.booking_reference)


@router.get(
    "/verify-session",
    response_model=SessionVerificationRead,
    response_model_exclude_none=True,
)
async def verify_session(
    session_id: str = Query(min_length=1),
    service: SessionVerificationService = Depends(get_session_verification_service),
):
    """Report whether a checkout session is paid and booked."""
    try:
        return await service.verify(session_id)
    except UpstreamQueryException:
        return JSONResponse(
            status_code=UpstreamQueryException.status_code,
            content={"success": False, "error": "Unable to verify payment session"},
        )


@router.get("/{booking_reference}", response_model=BookingRead)
async def get_booking(
    booking_reference: str,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
    staff: str = Depends(get_current_staff),
) -> BookingRead:
    """Full booking record for staff."""
    booking = await service.get_booking(booking_reference)
    return BookingRead.model_validate(booking)


@router.post("/{booking_reference}/status", response_model=BookingStatusRead)
async def advance_booking_status(
    booking_reference: str,
    payload: BookingStatusAdvance,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
    staff: str = Depends(get_current_staff),
) -> BookingStatusRead:
    """Move a booking forward, failing if its status is not ``from_status``."""
    booking = await service.advance_status(
        booking_reference,
        payload.from_status,
        payload.to_status,
        actor=staff,
    )
    logger.info("Booking %s moved to %s by %s", booking_reference, booking.status, staff)
    return BookingStatusRead.model_validate(booking)
