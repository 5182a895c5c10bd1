"""Background relay that retries pending outbox events.

Runs a simple asyncio loop that periodically picks up events left ``pending``
after a failed or interrupted first attempt.
"""

from __future__ import annotations

import asyncio
import logging

from app.core.config import settings
from app.core.database import async_session_factory
from app.services.outbox import relay_pending

logger = logging.getLogger(__name__)

_relay_task: asyncio.Task | None = None


async def _relay_loop(interval: float) -> None:
    """Run relay passes in a loop."""
    logger.info("Outbox relay started (interval=%ss)", interval)
    while True:
        try:
            async with async_session_factory() as db:
                count = await relay_pending(db)
                if count:
                    logger.info("Relay tick complete: %d event(s)", count)
        except Exception:
            logger.exception("Error during outbox relay pass")

        await asyncio.sleep(interval)


def start_relay(interval: float | None = None) -> None:
    """Start the relay as an asyncio task.

    Safe to call multiple times; only one relay will run.
    """
    global _relay_task
    if _relay_task is not None and not _relay_task.done():
        logger.warning("Outbox relay already running, skipping start")
        return

    _relay_task = asyncio.create_task(
        _relay_loop(interval or settings.OUTBOX_RELAY_INTERVAL_SECONDS),
        name="outbox-relay",
    )
    logger.info("Outbox relay task created")


def stop_relay() -> None:
    """Stop the relay if running."""
    global _relay_task
    if _relay_task is not None and not _relay_task.done():
        _relay_task.cancel()
        logger.info("Outbox relay cancelled")
    _relay_task = None
