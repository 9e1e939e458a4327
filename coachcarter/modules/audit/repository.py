"""Audit repository layer."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from coachcarter.core.enums import OutboxStatusEnum
from coachcarter.modules.audit.models import AuditLog, OutboxEvent
from coachcarter.shared.utils import utc_now


class AuditRepository:
    """DB operations for audit and outbox."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AsyncSessionTransaction:
        """Nested transaction that rolls back one unit of outbox work on error."""
        return self.session.begin_nested()

    async def create_audit_log(
        self,
        actor: str,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
    ) -> AuditLog:
        log = AuditLog(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        available_at: datetime | None = None,
    ) -> OutboxEvent:
        now = utc_now()
        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            status=OutboxStatusEnum.PENDING,
            occurred_at=now,
            available_at=available_at or now,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_pending_outbox_event(self, aggregate_id: str, event_type: str) -> OutboxEvent | None:
        stmt = select(OutboxEvent).where(
            OutboxEvent.aggregate_id == aggregate_id,
            OutboxEvent.event_type == event_type,
            OutboxEvent.status == OutboxStatusEnum.PENDING,
        )
        return await self.session.scalar(stmt)

    async def claim_due_outbox(
        self,
        now: datetime,
        limit: int,
        aggregate_id: str | None = None,
    ) -> list[OutboxEvent]:
        """Lock due pending events, skipping rows another sweeper holds."""
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.PENDING,
                OutboxEvent.available_at <= now,
            )
            .order_by(OutboxEvent.available_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        if aggregate_id is not None:
            stmt = stmt.where(OutboxEvent.aggregate_id == aggregate_id)
        return list((await self.session.scalars(stmt)).all())

    async def list_failed_outbox(self, limit: int, max_retries: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.FAILED,
                OutboxEvent.retries < max_retries,
            )
            .order_by(OutboxEvent.updated_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def mark_outbox_pending(self, event: OutboxEvent) -> OutboxEvent:
        event.status = OutboxStatusEnum.PENDING
        event.error_message = None
        event.processed_at = None
        await self.session.flush()
        return event

    async def mark_outbox_processed(
        self,
        event: OutboxEvent,
        processed_at: datetime,
    ) -> OutboxEvent:
        event.status = OutboxStatusEnum.PROCESSED
        event.processed_at = processed_at
        event.error_message = None
        await self.session.flush()
        return event

    async def mark_outbox_failed(self, event: OutboxEvent, error_message: str) -> OutboxEvent:
        event.status = OutboxStatusEnum.FAILED
        event.retries += 1
        event.error_message = error_message
        event.processed_at = None
        await self.session.flush()
        return event

    async def mark_outbox_canceled(self, event: OutboxEvent, reason: str) -> OutboxEvent:
        event.status = OutboxStatusEnum.CANCELED
        event.error_message = reason
        await self.session.flush()
        return event

    async def cancel_pending_outbox(self, aggregate_id: str, event_type: str, reason: str) -> int:
        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.aggregate_id == aggregate_id,
                OutboxEvent.event_type == event_type,
                OutboxEvent.status == OutboxStatusEnum.PENDING,
            )
            .values(status=OutboxStatusEnum.CANCELED, error_message=reason, updated_at=utc_now())
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def count_outbox_by_status(self) -> dict[OutboxStatusEnum, int]:
        stmt = select(OutboxEvent.status, func.count()).group_by(OutboxEvent.status)
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}
