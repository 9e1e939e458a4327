"""Audit and outbox schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from coachcarter.core.enums import OutboxStatusEnum


class OutboxRunRead(BaseModel):
    """Result of one staff-triggered outbox sweep."""

    requeued: int = 0
    processed: int = 0
    failed: int = 0
    canceled: int = 0
    dispatched: int = 0
    backlog: dict[OutboxStatusEnum, int] = Field(default_factory=dict)
