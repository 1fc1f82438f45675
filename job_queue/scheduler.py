"""
Delayed Task Scheduler — in-process timers that publish a payload later.

Each scheduled payload is one asyncio task sleeping until its delay has
elapsed, so hundreds can be pending at once. Timers are not persisted:
stop() (or a process restart) drops every pending payload.
"""
from __future__ import annotations

import asyncio
import structlog
from datetime import datetime, timezone
from typing import Awaitable, Callable

from job_queue.broker import BrokerError

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DelayedTaskScheduler:
    """
    Usage:
        scheduler = DelayedTaskScheduler(publisher.enqueue)
        await scheduler.start()
        scheduler.schedule(30.0, "Email to a@b.c: hello")
        await scheduler.stop()

    The clock must return timezone-aware datetimes.
    """

    def __init__(self, publish: Callable[[str], Awaitable[None]], clock: Clock = utc_now):
        self._publish = publish
        self.clock = clock
        self._timers: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._timers)

    async def start(self):
        self._running = True
        logger.info("delayed_scheduler_started")

    async def stop(self):
        """Stop the scheduler. Pending timers are cancelled and their payloads lost."""
        self._running = False
        dropped = len(self._timers)
        for task in list(self._timers):
            task.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()
        logger.info("delayed_scheduler_stopped", dropped=dropped)

    def delay_until(self, target: datetime) -> float:
        """Seconds from now until `target`. Naive targets are read as local time."""
        if target.tzinfo is None:
            target = target.astimezone()
        return (target - self.clock()).total_seconds()

    def schedule(self, delay_seconds: float, payload: str) -> asyncio.Task:
        if not self._running:
            raise RuntimeError("Delayed task scheduler is not running")
        task = asyncio.create_task(self._fire(max(delay_seconds, 0.0), payload))
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    async def _fire(self, delay_seconds: float, payload: str):
        await asyncio.sleep(delay_seconds)
        logger.info("scheduled_delay_expired", task=payload)
        try:
            await self._publish(payload)
        except BrokerError as e:
            logger.error("scheduled_publish_failed", task=payload, error=str(e))
        except Exception as e:
            logger.error("scheduled_publish_error", task=payload, error=str(e))
