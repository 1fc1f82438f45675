"""
Tiered Pipeline — wires the three tier workers and the dead-letter sink
onto one broker and starts/stops them together.
"""
from __future__ import annotations

import structlog
from typing import Optional

from channels.email_service import EmailService
from config.settings import Settings
from job_queue.broker import MessageBroker
from job_queue.consumer import TierWorker
from job_queue.dead_letter import DEFAULT_ALERT_RECIPIENT, DEFAULT_ALERT_SUBJECT, DeadLetterSink
from job_queue.tasks import SimulatedWorkExecutor, TaskExecutor
from job_queue.topology import EXCHANGE, TIER_ROUTES
from job_queue.worker import QueueWorker
from models.schemas import RetryTier

logger = structlog.get_logger()


class TieredPipeline:

    def __init__(
        self,
        broker: MessageBroker,
        executor: TaskExecutor,
        email_service: EmailService,
        exchange: str = EXCHANGE,
        concurrency: Optional[dict[RetryTier, int]] = None,
        alert_recipient: str = DEFAULT_ALERT_RECIPIENT,
        alert_subject: str = DEFAULT_ALERT_SUBJECT,
        alert_attempts: int = 3,
        alert_retry_backoff: float = 1.0,
    ):
        concurrency = concurrency or {}
        self.broker = broker
        self.tiers: dict[RetryTier, TierWorker] = {
            tier: TierWorker(
                TIER_ROUTES[tier], broker, executor,
                exchange=exchange,
                concurrency=concurrency.get(tier, 1),
            )
            for tier in (RetryTier.MAIN, RetryTier.RETRY_1, RetryTier.RETRY_2)
        }
        self.sink = DeadLetterSink(
            broker, email_service,
            recipient=alert_recipient,
            subject=alert_subject,
            concurrency=concurrency.get(RetryTier.DEAD_LETTER, 1),
            send_attempts=alert_attempts,
            retry_backoff=alert_retry_backoff,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        broker: MessageBroker,
        email_service: EmailService,
        executor: TaskExecutor = None,
    ) -> TieredPipeline:
        workers = settings.workers
        return cls(
            broker,
            executor or SimulatedWorkExecutor(workers.task_duration_seconds),
            email_service,
            exchange=settings.broker.exchange,
            concurrency={
                RetryTier.MAIN: workers.main_concurrency,
                RetryTier.RETRY_1: workers.retry_concurrency,
                RetryTier.RETRY_2: workers.second_retry_concurrency,
                RetryTier.DEAD_LETTER: workers.dead_letter_concurrency,
            },
            alert_recipient=settings.alerts.recipient,
            alert_subject=settings.alerts.subject,
            alert_attempts=settings.alerts.send_attempts,
        )

    @property
    def workers(self) -> list[QueueWorker]:
        return [*self.tiers.values(), self.sink]

    async def start(self):
        for worker in self.workers:
            await worker.start_background()
        logger.info("pipeline_started", workers=[w.name for w in self.workers])

    async def stop(self):
        for worker in self.workers:
            await worker.stop()
        logger.info("pipeline_stopped")
