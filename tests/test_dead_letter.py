"""
Tests — Dead-letter sink alerting.

Run:
  pytest tests/test_dead_letter.py -v
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from channels.email_service import EmailError, MockEmailService
from job_queue.dead_letter import (
    DEFAULT_ALERT_RECIPIENT, DEFAULT_ALERT_SUBJECT, DeadLetterSink, alert_body,
)
from job_queue.topology import EXCHANGE, QueueNames, RoutingKeys


class FlakyEmailService(MockEmailService):
    """Fails the first `failures` sends, then behaves like MockEmailService."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def send_email(self, to, subject, body):
        self.calls += 1
        if self.calls <= self.failures:
            raise EmailError("SMTP timeout")
        await super().send_email(to, subject, body)


class TestAlertContent:

    def test_alert_body(self):
        assert alert_body("job-42") == "The following task failed all retries: job-42"

    def test_defaults(self):
        assert DEFAULT_ALERT_RECIPIENT == "admin@example.com"
        assert DEFAULT_ALERT_SUBJECT == "DLQ Alert: Task Failed"

    @pytest.mark.asyncio
    async def test_handle_sends_one_alert(self, email_service):
        sink = DeadLetterSink(AsyncMock(), email_service)
        await sink.handle("job-42")

        assert len(email_service.sent) == 1
        sent = email_service.sent[0]
        assert sent.to == "admin@example.com"
        assert sent.subject == "DLQ Alert: Task Failed"
        assert "job-42" in sent.body

    @pytest.mark.asyncio
    async def test_custom_recipient_and_subject(self, email_service):
        sink = DeadLetterSink(AsyncMock(), email_service,
                              recipient="ops@example.com", subject="Task died")
        await sink.handle("job-1")
        assert email_service.sent[0].to == "ops@example.com"
        assert email_service.sent[0].subject == "Task died"

    def test_sink_reads_dlq(self, email_service):
        sink = DeadLetterSink(AsyncMock(), email_service)
        assert sink.queue == QueueNames.DLQ
        assert sink.name == "DLQ-Worker"


class TestAlertRetry:

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        email = FlakyEmailService(failures=2)
        sink = DeadLetterSink(AsyncMock(), email, send_attempts=3, retry_backoff=0)

        await sink.handle("job-1")

        assert email.calls == 3
        assert len(email.sent) == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise(self):
        email = FlakyEmailService(failures=5)
        sink = DeadLetterSink(AsyncMock(), email, send_attempts=3, retry_backoff=0)

        with pytest.raises(EmailError):
            await sink.handle("job-1")
        assert email.calls == 3
        assert email.sent == []

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        email = AsyncMock()
        email.send_email.side_effect = EmailError("down")
        sink = DeadLetterSink(AsyncMock(), email, send_attempts=1, retry_backoff=0)

        with pytest.raises(EmailError):
            await sink.handle("job-1")
        assert email.send_email.await_count == 1


class TestSinkOnBroker:

    @pytest.mark.asyncio
    async def test_consumes_dlq_and_acknowledges(self, broker, email_service, waiter):
        sink = DeadLetterSink(broker, email_service, retry_backoff=0)
        await sink.start_background()
        try:
            await broker.publish(EXCHANGE, RoutingKeys.DLQ, "job-1")
            await broker.publish(EXCHANGE, RoutingKeys.DLQ, "job-2")

            assert await waiter(lambda: len(email_service.sent) == 2)
            assert await broker.queue_length(QueueNames.DLQ) == 0
            bodies = [e.body for e in email_service.sent]
            assert bodies == [alert_body("job-1"), alert_body("job-2")]
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_unsent_alert_keeps_message_in_dlq(self, broker, waiter):
        email = FlakyEmailService(failures=1)
        sink = DeadLetterSink(broker, email, send_attempts=1, retry_backoff=0)
        await sink.start_background()
        try:
            await broker.publish(EXCHANGE, RoutingKeys.DLQ, "job-1")
            # first delivery fails and is requeued, the redelivery succeeds
            assert await waiter(lambda: len(email.sent) == 1)
            assert email.calls == 2
            assert broker.delivered_to(QueueNames.DLQ) == ["job-1"]
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_stop_is_clean(self, broker, email_service):
        sink = DeadLetterSink(broker, email_service)
        await sink.start_background()
        assert sink.running
        await sink.stop()
        await asyncio.sleep(0)
        assert not sink.running


class TestMockEmailService:

    @pytest.mark.asyncio
    async def test_records_sent_email(self, email_service):
        await email_service.send_email("a@example.com", "S", "B")
        sent = email_service.sent[0]
        assert (sent.to, sent.subject, sent.body) == ("a@example.com", "S", "B")
        assert sent.message_id.endswith("@example.com>")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["", "not-an-address", "a@b@c"])
    async def test_invalid_recipient(self, email_service, address):
        with pytest.raises(EmailError):
            await email_service.send_email(address, "S", "B")
        assert email_service.sent == []
