"""Outbound channels used for operator alerting."""
from channels.email_service import EmailError, EmailService, MockEmailService, SentEmail

__all__ = ["EmailError", "EmailService", "MockEmailService", "SentEmail"]
