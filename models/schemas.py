"""
Core data models for the sequential retry pipeline.
These are the universal types shared across all modules.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class RetryTier(str, Enum):
    """
    The stage a task currently occupies.

    Never written into a message: a consumer knows the tier from the
    queue it reads.
    """
    MAIN = "main"
    RETRY_1 = "retry_1"
    RETRY_2 = "retry_2"
    DEAD_LETTER = "dead_letter"


# ──────────────────────────────────────────────────────────────
#  Scheduled email
# ──────────────────────────────────────────────────────────────

class ScheduledEmailRequest(BaseModel):
    """
    A request to send an email at (or after) a given time.

    Transient: it becomes a task message either immediately or when its
    timer fires, and is never stored.
    """
    model_config = ConfigDict(populate_by_name=True)

    email: str
    subject: str = ""
    body: str = ""
    scheduled_time: Optional[datetime] = Field(default=None, alias="scheduledTime")

    def task_message(self) -> str:
        return f"Email to {self.email}: {self.subject}"
