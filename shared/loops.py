import asyncio
import logging
from typing import Awaitable, Callable

from shared import time

logger = logging.getLogger(__name__)


async def wait_or_stop(stop_event: asyncio.Event, timeout: float) -> None:
    if stop_event.is_set():
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        # timed out: just continue the loop
        pass


async def every(stop_event: asyncio.Event, seconds: float, job: Callable[[], Awaitable], name: str) -> None:
    """Run job, sleep, repeat until stop_event is set. A failing run never stops the loop."""
    while not stop_event.is_set():
        try:
            await job()
        except Exception:
            logger.exception("%s loop error", name)
        await wait_or_stop(stop_event, seconds)


async def daily_at(stop_event: asyncio.Event, hour: int, minute: int, job: Callable[[], Awaitable], name: str) -> None:
    """Run job every day at HH:MM in the bot timezone."""
    while not stop_event.is_set():
        delay = time.seconds_until(hour, minute)
        logger.info("%s next run in %.0fs", name, delay)

        await wait_or_stop(stop_event, delay)
        if stop_event.is_set():
            break

        try:
            await job()
        except Exception:
            logger.exception("%s job error", name)
        # step past the target minute so the next delay is a full day
        await wait_or_stop(stop_event, 1)
