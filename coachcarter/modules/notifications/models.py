"""Notifications ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coachcarter.core.database import Base, BaseModelMixin
from coachcarter.core.enums import NotificationChannelEnum, NotificationStatusEnum


class NotificationDelivery(BaseModelMixin, Base):
    """One attempted delivery of a booking notification on one channel."""

    __tablename__ = "notification_deliveries"
    __table_args__ = (
        UniqueConstraint(
            "booking_reference",
            "channel",
            name="uq_notification_deliveries_booking_reference_channel",
        ),
    )

    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    channel: Mapped[NotificationChannelEnum] = mapped_column(
        SAEnum(NotificationChannelEnum, name="notification_channel_enum", native_enum=False),
        nullable=False,
    )
    recipient: Mapped[str | None] = mapped_column(String(320), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[NotificationStatusEnum] = mapped_column(
        SAEnum(NotificationStatusEnum, name="notification_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
