"""
Email Service — the alerting contract used by the dead-letter sink.

Only the contract matters to the pipeline. MockEmailService logs what it
would send and keeps a copy; production replaces the transport call.
"""
from __future__ import annotations

import abc
import re
import uuid
import structlog
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = structlog.get_logger()

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


class EmailError(Exception):
    """Raised when an email cannot be handed to the transport."""


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str
    message_id: str = ""
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EmailService(abc.ABC):

    @abc.abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Send one email. Raises on failure."""
        ...


class MockEmailService(EmailService):
    """Development email service: validates the address, logs, and records."""

    def __init__(self, domain: str = "example.com"):
        self._domain = domain
        self.sent: list[SentEmail] = []

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if not _EMAIL_RE.match(to or ""):
            raise EmailError(f"Invalid recipient: {to!r}")

        message_id = f"<{uuid.uuid4().hex}@{self._domain}>"

        # Production: aiosmtplib send here

        self.sent.append(SentEmail(to=to, subject=subject, body=body, message_id=message_id))
        logger.info("email_sent", to=to, subject=subject, body=body, message_id=message_id)
