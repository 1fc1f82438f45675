"""
Task executors — the unit of work a tier worker runs for each payload.

An executor either returns (success) or raises (failure). Workers never
look at the exception type: any error escalates the task.
"""
from __future__ import annotations

import abc
import asyncio
import structlog

logger = structlog.get_logger()


class TaskExecutionError(Exception):
    """Raised by executors when a task cannot be completed."""


class TaskExecutor(abc.ABC):

    @abc.abstractmethod
    async def execute(self, payload: str, worker_name: str = "") -> None:
        ...


class SimulatedWorkExecutor(TaskExecutor):
    """Stands in for real work: takes a fixed amount of time, then succeeds."""

    def __init__(self, duration_seconds: float = 1.0):
        self.duration_seconds = duration_seconds

    async def execute(self, payload: str, worker_name: str = "") -> None:
        logger.info("task_started", worker=worker_name, task=payload)
        await asyncio.sleep(self.duration_seconds)
        logger.info("task_finished", worker=worker_name, task=payload)
