"""Shared test fixtures for the sequential retry pipeline."""
import asyncio
import time

import pytest
import pytest_asyncio

from channels.email_service import MockEmailService
from job_queue.broker import InMemoryMessageBroker
from job_queue.tasks import TaskExecutionError, TaskExecutor
from job_queue.topology import build_topology, declare_topology

# Shortened wait-queue TTLs keep the full retry ladder well under a second
FAST_RETRY_WAIT_MS = 50
FAST_SECOND_RETRY_WAIT_MS = 100


class ScriptedExecutor(TaskExecutor):
    """
    Executor whose outcome is decided per payload.

    - payloads in `always_fail` raise on every attempt
    - payloads in `failures` raise that many times, then succeed
    - everything else succeeds
    Every attempt is recorded as (worker_name, payload).
    """

    def __init__(self, always_fail=(), failures=None, duration=0.0):
        self.always_fail = set(always_fail)
        self.failures = dict(failures or {})
        self.duration = duration
        self.attempts: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, payload: str, worker_name: str = "") -> None:
        self.attempts.append((worker_name, payload))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.in_flight -= 1
        if payload in self.always_fail:
            raise TaskExecutionError(f"Task {payload} always fails")
        remaining = self.failures.get(payload, 0)
        if remaining > 0:
            self.failures[payload] = remaining - 1
            raise TaskExecutionError(f"Task {payload} failed ({remaining} failures left)")

    def attempts_for(self, payload: str) -> list[str]:
        return [worker for worker, p in self.attempts if p == payload]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def waiter():
    return wait_until


@pytest.fixture
def topology():
    return build_topology(
        retry_wait_ms=FAST_RETRY_WAIT_MS,
        second_retry_wait_ms=FAST_SECOND_RETRY_WAIT_MS,
    )


@pytest_asyncio.fixture
async def broker(topology):
    b = InMemoryMessageBroker(requeue_delay=0.01)
    await b.connect()
    await declare_topology(b, topology)
    yield b
    await b.close()


@pytest.fixture
def email_service() -> MockEmailService:
    return MockEmailService()


@pytest.fixture
def scripted_executor():
    """Factory for ScriptedExecutor instances."""
    return ScriptedExecutor


@pytest.fixture(autouse=True)
def _reset_singletons():
    import config.settings as settings_module
    from job_queue.broker import reset_broker
    reset_broker()
    yield
    reset_broker()
    settings_module._settings = None
