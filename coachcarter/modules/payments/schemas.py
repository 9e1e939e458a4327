"""Payment provider schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from coachcarter.core.enums import PackageTypeEnum

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
BOOKING_EVENT_TYPES = frozenset({CHECKOUT_COMPLETED, CHECKOUT_ASYNC_PAYMENT_SUCCEEDED})
# Completed checkouts in this state are booked on async_payment_succeeded.
AWAITING_PAYMENT = "unpaid"

# Stripe caps customer-typed custom field answers at this length.
CUSTOM_FIELD_MAX_LENGTH = 255


def _custom_field_value(custom_fields: list[dict[str, Any]] | None, key: str) -> str | None:
    """Return the text or dropdown answer for a checkout custom field."""
    for field in custom_fields or []:
        if field.get("key") != key:
            continue
        for kind in ("text", "dropdown", "numeric"):
            value = (field.get(kind) or {}).get("value")
            if value:
                return str(value)[:CUSTOM_FIELD_MAX_LENGTH]
    return None


def _optional_int(value: object) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


class CheckoutCompletion(BaseModel):
    """Booking-relevant facts extracted from a paid checkout session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    payment_status: str | None
    customer_email: str
    customer_name: str | None
    amount_paid: Decimal
    currency: str
    package_type: PackageTypeEnum
    package_hours: int | None = None
    provisional_licence: str | None = None
    claimed_test_status: str | None = None
    claimed_test_reference: str | None = None
    claimed_test_centre: str | None = None

    @classmethod
    def from_session(cls, session: dict[str, Any]) -> CheckoutCompletion:
        """Build from the ``data.object`` of a checkout session event.

        Raises ``ValueError`` when the session lacks an id or a customer email.
        """
        session_id = session.get("id")
        if not session_id:
            raise ValueError("Checkout session id is missing")

        customer = session.get("customer_details") or {}
        customer_email = customer.get("email") or session.get("customer_email")
        if not customer_email:
            raise ValueError(f"Checkout session {session_id} has no customer email")

        metadata = session.get("metadata") or {}
        custom_fields = session.get("custom_fields")
        amount_total = session.get("amount_total") or 0

        return cls(
            session_id=str(session_id),
            payment_status=session.get("payment_status"),
            customer_email=str(customer_email),
            customer_name=customer.get("name"),
            amount_paid=Decimal(int(amount_total)) / Decimal(100),
            currency=str(session.get("currency") or "gbp").upper(),
            package_type=PackageTypeEnum.parse(metadata.get("package_type")),
            package_hours=_optional_int(metadata.get("hours")),
            provisional_licence=_custom_field_value(custom_fields, "provisional_licence"),
            claimed_test_status=_custom_field_value(custom_fields, "has_test_booked"),
            claimed_test_reference=_custom_field_value(custom_fields, "dvsa_reference"),
            claimed_test_centre=_custom_field_value(custom_fields, "test_centre_preference"),
        )


class ProviderSession(BaseModel):
    """Provider-side view of a checkout session."""

    session_id: str
    payment_status: str | None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class CheckoutSessionCreate(BaseModel):
    """Create hosted checkout session request."""

    line_items: list[dict[str, Any]] = Field(min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)
    custom_fields: list[dict[str, Any]] = Field(default_factory=list)
    success_url: str = Field(min_length=1)
    cancel_url: str = Field(min_length=1)
    customer_email: EmailStr | None = None


class CheckoutSessionRead(BaseModel):
    """Hosted checkout session response."""

    url: str
