"""
Tier Consumers — Main, Retry-1 and Retry-2 workers of the retry ladder.

Every tier runs the same state machine:

    receive ──▶ execute ──ok──▶ ack
                   │
                  fail
                   ▼
           publish to next tier ──▶ ack

The original message is acknowledged whatever the task outcome; failure
is expressed only by publishing forward (wait-1, wait-2, then the DLQ).
A task therefore runs at most three times and never moves backwards.
If the forward publish itself fails, the error reaches the broker, which
keeps the message on this tier.
"""
from __future__ import annotations

import structlog

from job_queue.broker import MessageBroker
from job_queue.tasks import TaskExecutor
from job_queue.topology import EXCHANGE, RoutingKeys, TierRoute
from job_queue.worker import QueueWorker
from models.schemas import RetryTier

logger = structlog.get_logger()

WORKER_NAMES = {
    RetryTier.MAIN: "Sequential-Worker",
    RetryTier.RETRY_1: "Retry-Worker",
    RetryTier.RETRY_2: "Second-Retry-Worker",
}


class TierWorker(QueueWorker):
    """Consumes one tier's processing queue and escalates failures."""

    def __init__(
        self,
        route: TierRoute,
        broker: MessageBroker,
        executor: TaskExecutor,
        exchange: str = EXCHANGE,
        concurrency: int = 1,
    ):
        if route.escalation_key is None:
            raise ValueError(f"Tier {route.tier.value} has no escalation route")
        super().__init__(
            broker,
            route.queue,
            WORKER_NAMES.get(route.tier, f"{route.tier.value}-worker"),
            concurrency,
        )
        self.route = route
        self.executor = executor
        self.exchange = exchange

    async def handle(self, payload: str) -> bool:
        """Run the task once. Returns False when it failed and was escalated."""
        try:
            await self.executor.execute(payload, worker_name=self.name)
        except Exception as e:
            logger.warning("task_failed",
                           worker=self.name,
                           tier=self.route.tier.value,
                           task=payload,
                           error=str(e))
            await self._escalate(payload)
            return False
        return True

    async def _escalate(self, payload: str):
        await self.broker.publish(self.exchange, self.route.escalation_key, payload)
        if self.route.escalation_key == RoutingKeys.DLQ:
            logger.error("task_permanently_failed",
                         worker=self.name,
                         task=payload,
                         routing_key=self.route.escalation_key)
        else:
            logger.info("task_escalated",
                        worker=self.name,
                        task=payload,
                        routing_key=self.route.escalation_key)
