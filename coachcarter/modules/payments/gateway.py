"""Stripe adapter: webhook signature verification and checkout session calls.

The stripe-python SDK is synchronous, so network calls run in a worker
thread. Signature verification is done on the raw request bytes with
``stripe.WebhookSignature.verify_header`` and only then parsed as JSON, which
keeps the event a plain ``dict`` regardless of SDK version.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import stripe

from coachcarter.core.config import Settings, get_settings
from coachcarter.modules.payments.schemas import CheckoutSessionCreate, ProviderSession
from coachcarter.shared.exceptions import AuthenticationException, UpstreamQueryException

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    """Operations the booking core needs from the payment provider."""

    def verify_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Return the trusted event or raise ``AuthenticationException``."""

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        """Return provider payment status or raise ``UpstreamQueryException``."""

    async def create_checkout_session(self, payload: CheckoutSessionCreate) -> str:
        """Create a hosted checkout page and return its URL."""


class StripeGateway:
    """Stripe implementation of ``PaymentGateway``."""

    provider = "stripe"

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.tolerance_seconds = settings.stripe_webhook_tolerance_seconds

    def verify_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not self.webhook_secret:
            logger.error("Rejecting webhook: STRIPE_WEBHOOK_SECRET is not configured")
            raise AuthenticationException("Webhook secret is not configured")
        if not signature:
            raise AuthenticationException("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise AuthenticationException("Webhook payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.webhook_secret,
                tolerance=self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise AuthenticationException("Webhook signature verification failed") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise AuthenticationException("Webhook payload is not valid JSON") from exc
        if not isinstance(event, dict) or not event.get("type"):
            raise AuthenticationException("Webhook payload is not an event object")
        return event

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise UpstreamQueryException("Payment provider is not configured")
        return self.api_key

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        api_key = self._require_api_key()
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve,
                session_id,
                api_key=api_key,
            )
        except stripe.StripeError as exc:
            logger.warning("Checkout session %s lookup failed: %s", session_id, exc)
            raise UpstreamQueryException("Unable to verify payment session") from exc
        return ProviderSession(session_id=session_id, payment_status=session.payment_status)

    async def create_checkout_session(self, payload: CheckoutSessionCreate) -> str:
        api_key = self._require_api_key()
        params: dict[str, Any] = {
            "line_items": payload.line_items,
            "mode": "payment",
            "success_url": payload.success_url,
            "cancel_url": payload.cancel_url,
            "metadata": payload.metadata,
            "phone_number_collection": {"enabled": True},
            "billing_address_collection": "required",
            "custom_text": {
                "submit": {
                    "message": "You will receive a confirmation email within 5 minutes with next steps.",
                },
            },
        }
        if payload.custom_fields:
            params["custom_fields"] = payload.custom_fields
        if payload.customer_email:
            params["customer_email"] = payload.customer_email

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, api_key=api_key, **params)
        except stripe.StripeError as exc:
            logger.warning("Checkout session creation failed: %s", exc)
            raise UpstreamQueryException("Unable to create checkout session") from exc
        logger.info(
            "Checkout session %s created for package %s",
            session.id,
            payload.metadata.get("package_type", "unknown"),
        )
        return str(session.url)


def get_payment_gateway() -> PaymentGateway:
    """Dependency provider for the payment gateway."""
    return StripeGateway(get_settings())
