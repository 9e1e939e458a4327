"""Delivery channels: transactional email (Resend) and chat webhook (Slack)."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import resend

from coachcarter.core.config import Settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


@dataclass(slots=True, frozen=True)
class EmailMessage:
    sender: str
    to: str
    subject: str
    html: str


def html_to_text(html: str) -> str:
    """Plain-text alternative for an HTML body."""
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None:
        """Deliver one message or raise."""


class ChatClient(Protocol):
    @property
    def enabled(self) -> bool:
        """False when no chat endpoint is configured."""

    async def post(self, payload: dict[str, Any]) -> None:
        """Deliver one chat message or raise."""


class ResendEmailSender:
    """Send email through the Resend API."""

    def __init__(self, api_key: str | None) -> None:
        self.api_key = api_key

    async def send(self, message: EmailMessage) -> None:
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not configured")
        resend.api_key = self.api_key
        params = {
            "from": message.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": html_to_text(message.html),
        }
        response = await asyncio.to_thread(resend.Emails.send, params)
        logger.debug("Email '%s' accepted by Resend: %s", message.subject, response)


class SlackChatClient:
    """Post alerts to a Slack incoming webhook."""

    def __init__(self, webhook_url: str | None, timeout_seconds: float) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def post(self, payload: dict[str, Any]) -> None:
        if not self.webhook_url:
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()


def build_email_sender(settings: Settings) -> EmailSender:
    return ResendEmailSender(settings.resend_api_key)


def build_chat_client(settings: Settings) -> ChatClient:
    return SlackChatClient(settings.slack_webhook_url, settings.notification_timeout_seconds)
