"""
Dead-Letter Sink — terminal consumer of the DLQ.

Every message here is a task that failed on all three tiers. The sink
sends one operator alert per message and acknowledges it; nothing is
retried or escalated any further. Only the alert call itself is retried,
and a message whose alert could not be sent stays in the DLQ.
"""
from __future__ import annotations

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from channels.email_service import EmailService
from job_queue.broker import MessageBroker
from job_queue.topology import QueueNames
from job_queue.worker import QueueWorker

logger = structlog.get_logger()

DEFAULT_ALERT_RECIPIENT = "admin@example.com"
DEFAULT_ALERT_SUBJECT = "DLQ Alert: Task Failed"


def alert_body(payload: str) -> str:
    return f"The following task failed all retries: {payload}"


class DeadLetterSink(QueueWorker):

    def __init__(
        self,
        broker: MessageBroker,
        email_service: EmailService,
        recipient: str = DEFAULT_ALERT_RECIPIENT,
        subject: str = DEFAULT_ALERT_SUBJECT,
        concurrency: int = 1,
        send_attempts: int = 3,
        retry_backoff: float = 1.0,
    ):
        super().__init__(broker, QueueNames.DLQ, "DLQ-Worker", concurrency)
        self.email_service = email_service
        self.recipient = recipient
        self.subject = subject
        self.send_attempts = max(1, send_attempts)
        self.retry_backoff = retry_backoff

    async def handle(self, payload: str):
        logger.warning("dead_letter_received", worker=self.name, task=payload)
        await self._send_alert(payload)

    async def _send_alert(self, payload: str):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.send_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            reraise=True,
        ):
            with attempt:
                await self.email_service.send_email(
                    self.recipient, self.subject, alert_body(payload)
                )
        logger.info("dead_letter_alert_sent", to=self.recipient, task=payload)
