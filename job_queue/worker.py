"""
Queue Worker — shared start/stop machinery for everything that consumes a queue.

A worker with concurrency N runs N consume loops on the same queue; the
broker hands each loop one message at a time.
"""
from __future__ import annotations

import abc
import asyncio
import structlog

from job_queue.broker import MessageBroker

logger = structlog.get_logger()


class QueueWorker(abc.ABC):
    """
    Usage:
        worker = SomeWorker(broker, ...)
        await worker.start_background()   # returns immediately
        await worker.stop()
    """

    def __init__(self, broker: MessageBroker, queue: str, name: str, concurrency: int = 1):
        self.broker = broker
        self.queue = queue
        self.name = name
        self.concurrency = max(1, concurrency)
        self._tasks: list[asyncio.Task] = []

    @abc.abstractmethod
    async def handle(self, payload: str):
        """Process one message. Returning acknowledges it; raising requeues it."""
        ...

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start_background(self) -> list[asyncio.Task]:
        """Start `concurrency` consume loops as background tasks."""
        for i in range(self.concurrency):
            task = asyncio.create_task(
                self.broker.consume(self.queue, self.handle, consumer_name=f"{self.name}-{i}"),
                name=f"{self.name}-{i}",
            )
            self._tasks.append(task)
        logger.info("worker_started",
                    worker=self.name,
                    queue=self.queue,
                    concurrency=self.concurrency)
        return list(self._tasks)

    async def stop(self):
        """Cancel all consume loops and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                # the consume loop had already died; keep stopping the rest
                logger.error("worker_task_failed",
                             worker=self.name,
                             task=task.get_name(),
                             error=str(e))
        self._tasks.clear()
        logger.info("worker_stopped", worker=self.name)
