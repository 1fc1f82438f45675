"""Tests for data models."""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models.schemas import RetryTier, ScheduledEmailRequest

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestRetryTier:
    def test_values(self):
        assert [t.value for t in RetryTier] == ["main", "retry_1", "retry_2", "dead_letter"]

    def test_is_string(self):
        assert RetryTier("retry_2") is RetryTier.RETRY_2
        assert RetryTier.MAIN == "main"


class TestScheduledEmailRequest:

    def test_task_message(self):
        req = ScheduledEmailRequest(email="x@y.z", subject="Report", body="ignored")
        assert req.task_message() == "Email to x@y.z: Report"

    def test_camel_case_alias(self):
        req = ScheduledEmailRequest.model_validate(
            {"email": "x@y.z", "scheduledTime": "2025-06-01T12:00:00Z"}
        )
        assert req.scheduled_time == NOW

    def test_field_name_accepted(self):
        req = ScheduledEmailRequest(email="x@y.z", scheduled_time=NOW)
        assert req.scheduled_time == NOW

    def test_defaults(self):
        req = ScheduledEmailRequest(email="x@y.z")
        assert req.subject == ""
        assert req.scheduled_time is None
        assert req.task_message() == "Email to x@y.z: "

    def test_email_required(self):
        with pytest.raises(ValidationError):
            ScheduledEmailRequest(subject="no address")

    def test_bad_time_rejected(self):
        with pytest.raises(ValidationError):
            ScheduledEmailRequest.model_validate({"email": "x@y.z", "scheduledTime": "soon"})
