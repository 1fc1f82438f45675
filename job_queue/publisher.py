"""
Task Publisher — the two entry points into the retry pipeline.

  enqueue(payload)          → exchange / sequential.main, right away
  schedule_email(request)   → same, now or when the requested time arrives
"""
from __future__ import annotations

import structlog
from typing import Iterable

from job_queue.broker import MessageBroker
from job_queue.scheduler import Clock, DelayedTaskScheduler, utc_now
from job_queue.topology import EXCHANGE, RoutingKeys
from models.schemas import ScheduledEmailRequest

logger = structlog.get_logger()


class TaskPublisher:

    def __init__(self, broker: MessageBroker, exchange: str = EXCHANGE, clock: Clock = utc_now):
        self.broker = broker
        self.exchange = exchange
        self.scheduler = DelayedTaskScheduler(self.enqueue, clock=clock)

    async def start(self):
        await self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()

    async def enqueue(self, payload: str):
        """Publish a task to the main queue. Broker errors propagate."""
        logger.info("task_enqueued", task=payload, routing_key=RoutingKeys.MAIN)
        await self.broker.publish(self.exchange, RoutingKeys.MAIN, payload)

    async def enqueue_many(self, payloads: Iterable[str]) -> int:
        count = 0
        for payload in payloads:
            await self.enqueue(payload)
            count += 1
        return count

    async def schedule_email(self, request: ScheduledEmailRequest) -> float:
        """
        Enqueue an email task now if its time has come (or none was given),
        otherwise arm a timer. Returns the delay applied, in seconds.
        """
        message = request.task_message()
        delay = 0.0
        if request.scheduled_time is not None:
            delay = self.scheduler.delay_until(request.scheduled_time)

        if delay <= 0:
            logger.info("scheduled_time_reached_enqueue_now", task=message)
            await self.enqueue(message)
            return 0.0

        self.scheduler.schedule(delay, message)
        logger.info("email_scheduled",
                    task=message,
                    scheduled_time=request.scheduled_time.isoformat(),
                    delay_seconds=round(delay, 3))
        return delay
