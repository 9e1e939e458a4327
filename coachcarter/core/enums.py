"""Core enums used across modules."""

from enum import StrEnum


class PackageTypeEnum(StrEnum):
    """Purchasable package tiers."""

    PAYG = "payg"
    BULK = "bulk"
    PASS_GUARANTEE = "pass_guarantee"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "PackageTypeEnum":
        """Map checkout metadata onto a known tier, falling back to UNKNOWN."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return cls.UNKNOWN
        return cls.UNKNOWN


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PAID_PENDING_VERIFICATION = "PAID_PENDING_VERIFICATION"
    PAID_PENDING_SCHEDULING = "PAID_PENDING_SCHEDULING"
    SCHEDULED = "SCHEDULED"


class NotificationChannelEnum(StrEnum):
    """Delivery channels tracked per booking."""

    CUSTOMER_EMAIL = "customer_email"
    STAFF_EMAIL = "staff_email"
    CHAT = "chat"
    AVAILABILITY_REQUEST = "availability_request"
    AVAILABILITY_STAFF = "availability_staff"
    AVAILABILITY_CHAT = "availability_chat"
    AVAILABILITY_CONFIRMATION = "availability_confirmation"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutboxStatusEnum(StrEnum):
    """Outbox event status."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    CANCELED = "canceled"


class AvailabilityChoiceEnum(StrEnum):
    """Customer answer for one weekly availability slot."""

    AVAILABLE = "available"
    PREFERRED = "preferred"
    UNAVAILABLE = "unavailable"
