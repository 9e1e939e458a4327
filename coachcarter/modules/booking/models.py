"""Booking ORM models."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Enum as SAEnum, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from coachcarter.core.database import Base, BaseModelMixin
from coachcarter.core.enums import BookingStatusEnum, PackageTypeEnum


class Booking(BaseModelMixin, Base):
    """Paid package booking created from a completed checkout session.

    Everything except ``status`` is written once at creation. The ``claimed_*``
    and licence fields are customer-supplied and only ever displayed.
    """

    __tablename__ = "bookings"

    session_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    customer_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    package_type: Mapped[PackageTypeEnum] = mapped_column(
        SAEnum(PackageTypeEnum, name="package_type_enum", native_enum=False),
        nullable=False,
    )
    package_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="GBP", nullable=False)

    provisional_licence: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_test_status: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_test_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_test_centre: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
