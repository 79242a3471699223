"""Background worker that releases stale pending reservations.

A reservation stays ``pending`` until its deposit is captured. When the
client abandons checkout (or the PaymentIntent could not be created and was
never retried) the slot hold would last forever; this worker cancels such
reservations once they are older than ``RESERVATION_HOLD_MINUTES``.

start_expiration_worker returns an async callable that stops the worker gracefully.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Awaitable, Callable

from inkslot.app.core import constants
from inkslot.app.services.booking import expire_stale_reservations

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


async def _expire_once(store, now_utc: datetime) -> int:
    try:
        expired = await expire_stale_reservations(store, now_utc)
    except Exception as e:
        logger.error("Expiration sweep failed: %s", e)
        return 0
    if expired:
        logger.debug("Expired reservations: %s", [str(rid) for rid in expired])
    return len(expired)


async def _run_loop(
    store,
    stop_event: asyncio.Event,
    interval_seconds: int,
    clock: Callable[[], datetime] = utc_now,
    initial_delay: float = 2.0,
) -> None:
    # initial small delay to avoid hammering immediately at startup
    if initial_delay:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=initial_delay)
            return
        except asyncio.TimeoutError:
            pass
    while not stop_event.is_set():
        try:
            await _expire_once(store, clock())
        except Exception as e:
            logger.exception("Expiration worker iteration error: %s", e)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


async def start_expiration_worker(
    store,
    *,
    interval_seconds: int | None = None,
    clock: Callable[[], datetime] = utc_now,
    initial_delay: float = 2.0,
) -> Callable[[], Awaitable[None]]:
    """Start the expiration worker and return an async stop() function."""
    if interval_seconds is None:
        if constants.RESERVATION_EXPIRE_CHECK_SECONDS_INVALID:
            logger.warning(
                "Invalid RESERVATION_EXPIRE_CHECK_SECONDS=%r, using %ss",
                constants.RESERVATION_EXPIRE_CHECK_SECONDS_RAW,
                constants.RESERVATION_EXPIRE_CHECK_SECONDS,
            )
        interval_seconds = constants.RESERVATION_EXPIRE_CHECK_SECONDS
    interval_seconds = max(1, int(interval_seconds))
    stop_event: asyncio.Event = asyncio.Event()
    task = asyncio.create_task(
        _run_loop(store, stop_event, interval_seconds, clock, initial_delay), name="expire-worker"
    )

    async def _stop() -> None:
        stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            task.cancel()
        except Exception:
            logger.exception("expiration: stop failed")

    logger.info("Expiration worker started (interval=%ss)", interval_seconds)
    return _stop


__all__ = ["start_expiration_worker"]
