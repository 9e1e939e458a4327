"""Outbox operations API router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coachcarter.core.database import get_db_session
from coachcarter.core.security import get_current_staff
from coachcarter.modules.audit.repository import AuditRepository
from coachcarter.modules.audit.schemas import OutboxRunRead
from coachcarter.modules.notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from coachcarter.modules.notifications.outbox_worker import build_outbox_worker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outbox", tags=["outbox"])


@router.post("/run", response_model=OutboxRunRead)
async def run_outbox(
    session: AsyncSession = Depends(get_db_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    staff: str = Depends(get_current_staff),
) -> OutboxRunRead:
    """Run one outbox sweep now (same work as the polling worker)."""
    stats = await build_outbox_worker(session, dispatcher).run_once()
    backlog = await AuditRepository(session).count_outbox_by_status()
    logger.info("Outbox sweep triggered by %s: %s", staff, stats)
    return OutboxRunRead(**stats, backlog=backlog)
