"""Booking notification fan-out with per-channel failure isolation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Collection
from dataclasses import dataclass
from typing import Any

from coachcarter.core.config import Settings, get_settings
from coachcarter.core.enums import NotificationChannelEnum, NotificationStatusEnum
from coachcarter.core.metrics import record_notification_delivery
from coachcarter.modules.booking.models import Booking
from coachcarter.modules.notifications import messages
from coachcarter.modules.notifications.channels import (
    ChatClient,
    EmailMessage,
    EmailSender,
    build_chat_client,
    build_email_sender,
)
from coachcarter.shared.exceptions import NotificationDeliveryException

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChannelResult:
    channel: NotificationChannelEnum
    status: NotificationStatusEnum
    recipient: str | None = None
    subject: str | None = None
    error: str | None = None


class NotificationDispatcher:
    """Send customer, staff and chat notifications for a booking.

    No method raises for a delivery problem: each channel reports a
    ``ChannelResult`` and the others still run.
    """

    def __init__(
        self,
        email_sender: EmailSender,
        chat_client: ChatClient,
        *,
        customer_email_from: str,
        system_email_from: str,
        staff_email: str | None,
        public_site_url: str,
        followup_delay_minutes: int = 5,
    ) -> None:
        self.email_sender = email_sender
        self.chat_client = chat_client
        self.customer_email_from = customer_email_from
        self.system_email_from = system_email_from
        self.staff_email = staff_email
        self.public_site_url = public_site_url
        self.followup_delay_minutes = followup_delay_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> NotificationDispatcher:
        return cls(
            email_sender=build_email_sender(settings),
            chat_client=build_chat_client(settings),
            customer_email_from=settings.customer_email_from,
            system_email_from=settings.system_email_from,
            staff_email=settings.staff_email,
            public_site_url=settings.public_site_url,
            followup_delay_minutes=settings.availability_followup_delay_minutes,
        )

    async def dispatch_booking_created(
        self,
        booking: Booking,
        skip_channels: Collection[NotificationChannelEnum] = (),
    ) -> list[ChannelResult]:
        """Customer confirmation, staff alert and chat alert for a new booking."""
        pending: list[Awaitable[ChannelResult]] = []

        if NotificationChannelEnum.CUSTOMER_EMAIL not in skip_channels:
            subject, html = messages.customer_confirmation(booking, self.followup_delay_minutes)
            pending.append(
                self._send_email(
                    NotificationChannelEnum.CUSTOMER_EMAIL,
                    EmailMessage(self.customer_email_from, booking.customer_email, subject, html),
                ),
            )
        if NotificationChannelEnum.STAFF_EMAIL not in skip_channels:
            subject, html = messages.staff_alert(booking)
            pending.append(self._send_staff_email(NotificationChannelEnum.STAFF_EMAIL, subject, html))
        if NotificationChannelEnum.CHAT not in skip_channels:
            pending.append(self._post_chat(NotificationChannelEnum.CHAT, messages.chat_alert(booking)))

        results = list(await asyncio.gather(*pending))
        logger.info(
            "Booking %s notifications: %s",
            booking.booking_reference,
            ", ".join(f"{result.channel}={result.status}" for result in results) or "nothing to send",
        )
        return results

    async def send_availability_request(self, booking: Booking) -> ChannelResult:
        """Second-stage email asking the customer for weekly availability."""
        subject, html = messages.availability_request(booking, self.public_site_url)
        return await self._send_email(
            NotificationChannelEnum.AVAILABILITY_REQUEST,
            EmailMessage(self.customer_email_from, booking.customer_email, subject, html),
        )

    async def dispatch_availability_received(
        self,
        booking: Booking,
        *,
        available_slots: int,
        preferred_slots: int,
        frequency_preference: str | None,
        notes: str | None,
    ) -> list[ChannelResult]:
        staff_subject, staff_html = messages.availability_staff_alert(
            booking,
            available_slots,
            preferred_slots,
            frequency_preference,
            notes,
            self.public_site_url,
        )
        customer_subject, customer_html = messages.availability_confirmation(booking)
        results = await asyncio.gather(
            self._send_staff_email(NotificationChannelEnum.AVAILABILITY_STAFF, staff_subject, staff_html),
            self._post_chat(
                NotificationChannelEnum.AVAILABILITY_CHAT,
                messages.availability_chat_alert(booking, available_slots, preferred_slots),
            ),
            self._send_email(
                NotificationChannelEnum.AVAILABILITY_CONFIRMATION,
                EmailMessage(self.customer_email_from, booking.customer_email, customer_subject, customer_html),
            ),
        )
        return list(results)

    async def _send_staff_email(
        self,
        channel: NotificationChannelEnum,
        subject: str,
        html: str,
    ) -> ChannelResult:
        if not self.staff_email:
            missing = NotificationDeliveryException("STAFF_EMAIL is not configured", channel)
            return self._failed(channel, None, subject, missing)
        return await self._send_email(channel, EmailMessage(self.system_email_from, self.staff_email, subject, html))

    async def _send_email(self, channel: NotificationChannelEnum, message: EmailMessage) -> ChannelResult:
        try:
            await self._deliver(channel, self.email_sender.send(message))
        except NotificationDeliveryException as exc:
            return self._failed(channel, message.to, message.subject, exc)
        record_notification_delivery(channel, NotificationStatusEnum.SENT)
        return ChannelResult(channel, NotificationStatusEnum.SENT, message.to, message.subject)

    async def _post_chat(self, channel: NotificationChannelEnum, payload: dict[str, Any]) -> ChannelResult:
        if not self.chat_client.enabled:
            record_notification_delivery(channel, NotificationStatusEnum.SKIPPED)
            return ChannelResult(channel, NotificationStatusEnum.SKIPPED)
        try:
            await self._deliver(channel, self.chat_client.post(payload))
        except NotificationDeliveryException as exc:
            return self._failed(channel, None, payload.get("text"), exc)
        record_notification_delivery(channel, NotificationStatusEnum.SENT)
        return ChannelResult(channel, NotificationStatusEnum.SENT, subject=payload.get("text"))

    @staticmethod
    async def _deliver(channel: NotificationChannelEnum, delivery: Awaitable[None]) -> None:
        try:
            await delivery
        except Exception as exc:
            raise NotificationDeliveryException(str(exc) or type(exc).__name__, channel=channel) from exc

    @staticmethod
    def _failed(
        channel: NotificationChannelEnum,
        recipient: str | None,
        subject: str | None,
        exc: NotificationDeliveryException,
    ) -> ChannelResult:
        logger.warning("Notification channel %s failed: %s", channel, exc.message)
        record_notification_delivery(channel, NotificationStatusEnum.FAILED)
        return ChannelResult(channel, NotificationStatusEnum.FAILED, recipient, subject, exc.message)


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dependency provider for notification dispatch."""
    return NotificationDispatcher.from_settings(get_settings())
