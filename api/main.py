"""
FastAPI Application — HTTP entry points into the retry pipeline.

Provides:
- POST /api/sequential/enqueue         batch of task payloads
- POST /api/sequential/schedule-email  one email, now or at a given time
- GET  /api/sequential/queues          depth of every queue in the topology
- GET  /health

The lifespan connects the broker, declares the topology, and runs the
tier workers and the delayed-email scheduler inside the API process.
"""
from __future__ import annotations

import structlog
from dataclasses import asdict
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Optional

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException

from channels.email_service import EmailService, MockEmailService
from config.settings import Settings, get_settings
from job_queue.broker import BrokerError, BrokerUnavailableError, MessageBroker, create_broker
from job_queue.pipeline import TieredPipeline
from job_queue.publisher import TaskPublisher
from job_queue.tasks import TaskExecutor
from job_queue.topology import build_topology, declare_topology
from models.schemas import ScheduledEmailRequest

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    broker: Optional[MessageBroker] = None,
    email_service: Optional[EmailService] = None,
    executor: Optional[TaskExecutor] = None,
) -> FastAPI:
    settings = settings or get_settings()
    broker = broker or create_broker(asdict(settings.broker))
    email_service = email_service or MockEmailService()

    topology = build_topology(
        exchange=settings.broker.exchange,
        retry_wait_ms=settings.retry.retry_wait_ms,
        second_retry_wait_ms=settings.retry.second_retry_wait_ms,
    )
    publisher = TaskPublisher(broker, exchange=settings.broker.exchange)
    pipeline = TieredPipeline.from_settings(settings, broker, email_service, executor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await broker.connect()
        await declare_topology(broker, topology)
        await publisher.start()
        await pipeline.start()
        logger.info("sequential_queue_started",
                    broker=type(broker).__name__,
                    exchange=settings.broker.exchange)
        yield

        await pipeline.stop()
        await publisher.stop()
        await broker.close()
        logger.info("sequential_queue_stopped")

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Tiered retry pipeline with dead-letter alerting",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.broker = broker
    app.state.publisher = publisher
    app.state.pipeline = pipeline
    app.state.topology = topology

    # ══════════════════════════════════════════════════════════════
    #  HEALTH
    # ══════════════════════════════════════════════════════════════

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "broker": type(broker).__name__,
            "workers": [w.name for w in pipeline.workers if w.running],
            "pending_scheduled": publisher.scheduler.pending,
        }

    # ══════════════════════════════════════════════════════════════
    #  SEQUENTIAL QUEUE
    # ══════════════════════════════════════════════════════════════

    @app.post("/api/sequential/enqueue")
    async def enqueue(items: list[str]):
        try:
            count = await publisher.enqueue_many(items)
        except BrokerUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return f"Enqueued {count} items. Check logs for sequential processing."

    @app.post("/api/sequential/schedule-email")
    async def schedule_email(req: ScheduledEmailRequest):
        try:
            await publisher.schedule_email(req)
        except BrokerUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e))
        when = req.scheduled_time.isoformat() if req.scheduled_time else "now"
        return f"Email scheduled for {when}"

    @app.get("/api/sequential/queues")
    async def queue_depths():
        depths = {}
        try:
            for name in topology.queue_names:
                depths[name] = await broker.queue_length(name)
        except BrokerError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"exchange": settings.broker.exchange, "queues": depths}

    return app


app = create_app()


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
