"""Executable worker for the booking outbox sweep."""

from __future__ import annotations

import asyncio
import logging
import os

from coachcarter.core.config import get_settings
from coachcarter.core.database import session_scope
from coachcarter.modules.notifications.dispatcher import NotificationDispatcher
from coachcarter.modules.notifications.outbox_worker import build_outbox_worker

logger = logging.getLogger(__name__)


async def run_cycle(dispatcher: NotificationDispatcher | None = None) -> dict[str, int]:
    """Run a single outbox sweep in one DB transaction."""
    dispatcher = dispatcher or NotificationDispatcher.from_settings(get_settings())
    async with session_scope() as session:
        worker = build_outbox_worker(
            session,
            dispatcher,
            batch_size=int(os.getenv("OUTBOX_WORKER_BATCH_SIZE", "100")),
            max_retries=int(os.getenv("OUTBOX_WORKER_MAX_RETRIES", "5")),
            base_backoff_seconds=int(os.getenv("OUTBOX_WORKER_BASE_BACKOFF_SECONDS", "30")),
            max_backoff_seconds=int(os.getenv("OUTBOX_WORKER_MAX_BACKOFF_SECONDS", "300")),
        )
        return await worker.run_once()


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    logging.basicConfig(level=os.getenv("OUTBOX_WORKER_LOG_LEVEL", get_settings().log_level))
    mode = os.getenv("OUTBOX_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(os.getenv("OUTBOX_WORKER_POLL_SECONDS", "30"))
    dispatcher = NotificationDispatcher.from_settings(get_settings())

    if mode == "once":
        stats = await run_cycle(dispatcher)
        logger.info("Outbox worker stats: %s", stats)
        return

    while True:
        try:
            stats = await run_cycle(dispatcher)
            logger.info("Outbox worker stats: %s", stats)
        except Exception:
            logger.exception("Outbox worker cycle failed")
        await asyncio.sleep(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
