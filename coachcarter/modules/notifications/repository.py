"""Notifications repository layer."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coachcarter.core.enums import NotificationChannelEnum, NotificationStatusEnum
from coachcarter.modules.notifications.models import NotificationDelivery


class NotificationsRepository:
    """DB operations for notification deliveries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_delivery(
        self,
        booking_reference: str,
        channel: NotificationChannelEnum,
    ) -> NotificationDelivery | None:
        stmt = select(NotificationDelivery).where(
            NotificationDelivery.booking_reference == booking_reference,
            NotificationDelivery.channel == channel,
        )
        return await self.session.scalar(stmt)

    async def list_sent_channels(self, booking_reference: str) -> set[NotificationChannelEnum]:
        stmt = select(NotificationDelivery.channel).where(
            NotificationDelivery.booking_reference == booking_reference,
            NotificationDelivery.status.in_((NotificationStatusEnum.SENT, NotificationStatusEnum.SKIPPED)),
        )
        return set((await self.session.scalars(stmt)).all())

    async def record_delivery(
        self,
        booking_reference: str,
        channel: NotificationChannelEnum,
        status: NotificationStatusEnum,
        recipient: str | None,
        subject: str | None,
        error_message: str | None,
        sent_at: datetime | None,
    ) -> NotificationDelivery:
        """Insert or overwrite the delivery row for a booking channel."""
        delivery = await self.get_delivery(booking_reference, channel)
        if delivery is None:
            delivery = NotificationDelivery(booking_reference=booking_reference, channel=channel)
            self.session.add(delivery)
        delivery.status = status
        delivery.recipient = recipient
        delivery.subject = subject
        delivery.error_message = error_message
        delivery.sent_at = sent_at
        await self.session.flush()
        return delivery
