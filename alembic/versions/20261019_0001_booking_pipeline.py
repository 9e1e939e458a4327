"""Booking pipeline schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# native_enum=False columns store enum member names.
package_type_enum = sa.Enum(
    "PAYG", "BULK", "PASS_GUARANTEE", "UNKNOWN", name="package_type_enum", native_enum=False
)
booking_status_enum = sa.Enum(
    "PAID_PENDING_VERIFICATION",
    "PAID_PENDING_SCHEDULING",
    "SCHEDULED",
    name="booking_status_enum",
    native_enum=False,
)
notification_channel_enum = sa.Enum(
    "CUSTOMER_EMAIL",
    "STAFF_EMAIL",
    "CHAT",
    "AVAILABILITY_REQUEST",
    "AVAILABILITY_STAFF",
    "AVAILABILITY_CHAT",
    "AVAILABILITY_CONFIRMATION",
    name="notification_channel_enum",
    native_enum=False,
)
notification_status_enum = sa.Enum("SENT", "FAILED", "SKIPPED", name="notification_status_enum", native_enum=False)
outbox_status_enum = sa.Enum(
    "PENDING", "PROCESSED", "FAILED", "CANCELED", name="outbox_status_enum", native_enum=False
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("booking_reference", sa.String(length=32), nullable=False),
        sa.Column("customer_email", sa.String(length=320), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("package_type", package_type_enum, nullable=False),
        sa.Column("package_hours", sa.Integer(), nullable=True),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("provisional_licence", sa.String(length=255), nullable=True),
        sa.Column("claimed_test_status", sa.String(length=255), nullable=True),
        sa.Column("claimed_test_reference", sa.String(length=255), nullable=True),
        sa.Column("claimed_test_centre", sa.String(length=255), nullable=True),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.UniqueConstraint("session_id", name="uq_bookings_session_id"),
        sa.UniqueConstraint("booking_reference", name="uq_bookings_booking_reference"),
    )
    op.create_index("ix_bookings_customer_email", "bookings", ["customer_email"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)

    op.create_table(
        "notification_deliveries",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("booking_reference", sa.String(length=32), nullable=False),
        sa.Column("channel", notification_channel_enum, nullable=False),
        sa.Column("recipient", sa.String(length=320), nullable=True),
        sa.Column("subject", sa.String(length=255), nullable=True),
        sa.Column("status", notification_status_enum, nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "booking_reference",
            "channel",
            name="uq_notification_deliveries_booking_reference_channel",
        ),
    )
    op.create_index(
        "ix_notification_deliveries_booking_reference",
        "notification_deliveries",
        ["booking_reference"],
        unique=False,
    )
    op.create_index("ix_notification_deliveries_status", "notification_deliveries", ["status"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=128), nullable=False),
        sa.Column("aggregate_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)
    op.create_index(
        "ix_outbox_events_status_available_at",
        "outbox_events",
        ["status", "available_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status_available_at", table_name="outbox_events")
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_notification_deliveries_status", table_name="notification_deliveries")
    op.drop_index("ix_notification_deliveries_booking_reference", table_name="notification_deliveries")
    op.drop_table("notification_deliveries")

    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_customer_email", table_name="bookings")
    op.drop_table("bookings")
