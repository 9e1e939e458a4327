"""Booking schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from coachcarter.core.enums import BookingStatusEnum, PackageTypeEnum

PACKAGE_DISPLAY_NAMES: dict[PackageTypeEnum, str] = {
    PackageTypeEnum.PAYG: "Pay As You Go — Single Lesson",
    PackageTypeEnum.PASS_GUARANTEE: "18-Week Pass Guarantee",
}


def package_display_name(package_type: PackageTypeEnum, hours: int | None = None) -> str:
    """Human-facing package name."""
    if package_type == PackageTypeEnum.BULK:
        return f"{hours} Hour Package" if hours else "Hour Package"
    return PACKAGE_DISPLAY_NAMES.get(package_type, str(package_type))


class LifecycleOutcomeEnum(StrEnum):
    """What processing a provider event did."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class LifecycleResult(BaseModel):
    """Result of handling one provider event."""

    outcome: LifecycleOutcomeEnum
    booking_reference: str | None = None
    status: BookingStatusEnum | None = None

    @property
    def created(self) -> bool:
        return self.outcome == LifecycleOutcomeEnum.CREATED


class WebhookAck(BaseModel):
    """Acknowledgment returned to the payment provider."""

    received: bool = True
    outcome: LifecycleOutcomeEnum
    booking_reference: str | None = None


class SessionVerificationRead(BaseModel):
    """Client polling result for a checkout session.

    Deliberately carries no extended metadata or internal status.
    """

    success: bool
    pending: bool | None = None
    message: str | None = None
    error: str | None = None
    booking_ref: str | None = None
    package_name: str | None = None
    package_type: PackageTypeEnum | None = None
    amount: Decimal | None = None


class BookingStatusAdvance(BaseModel):
    """Staff status change request (compare-and-swap)."""

    from_status: BookingStatusEnum
    to_status: BookingStatusEnum


class BookingRead(BaseModel):
    """Staff view of a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_reference: str
    session_id: str
    customer_email: str
    customer_name: str | None
    package_type: PackageTypeEnum
    package_hours: int | None
    amount_paid: Decimal
    currency: str
    provisional_licence: str | None
    claimed_test_status: str | None
    claimed_test_reference: str | None
    claimed_test_centre: str | None
    status: BookingStatusEnum
    created_at: datetime
    updated_at: datetime


class BookingStatusRead(BaseModel):
    """Redacted staff view returned after a status change."""

    model_config = ConfigDict(from_attributes=True)

    booking_reference: str
    package_type: PackageTypeEnum
    status: BookingStatusEnum
    updated_at: datetime
