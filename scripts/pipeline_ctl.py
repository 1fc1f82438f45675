#!/usr/bin/env python3
"""
Pipeline Control — Operate the sequential retry pipeline from a shell.

Usage:
    python scripts/pipeline_ctl.py declare                 # declare exchange/queues/bindings
    python scripts/pipeline_ctl.py enqueue job-1 job-2     # publish tasks to the main queue
    python scripts/pipeline_ctl.py depths                  # show queue depths
    python scripts/pipeline_ctl.py workers                 # run tier workers + DLQ sink

    # Against another config:
    SEQUENTIAL_CONFIG=config/prod.yaml python scripts/pipeline_ctl.py depths

The in-memory backend lives only as long as this process, so `declare`,
`enqueue` and `depths` are only meaningful with the redis or amqp backend.
"""
import argparse
import asyncio
import os
import sys
from dataclasses import asdict

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _bootstrap(config_path=None):
    from config.settings import load_settings
    from job_queue.broker import create_broker
    from job_queue.topology import build_topology

    settings = load_settings(config_path)
    broker = create_broker(asdict(settings.broker))
    topology = build_topology(
        exchange=settings.broker.exchange,
        retry_wait_ms=settings.retry.retry_wait_ms,
        second_retry_wait_ms=settings.retry.second_retry_wait_ms,
    )
    return settings, broker, topology


async def cmd_declare(args) -> int:
    from job_queue.topology import declare_topology

    _, broker, topology = _bootstrap(args.config)
    await broker.connect()
    try:
        await declare_topology(broker, topology)
    finally:
        await broker.close()

    print(f"Exchange: {topology.exchange.name} ({topology.exchange.type})")
    for spec in topology.queues:
        extra = f"  {spec.arguments()}" if spec.arguments() else ""
        print(f"  queue {spec.name}{extra}")
    for b in topology.bindings:
        print(f"  bind  {b.routing_key} → {b.queue}")
    return 0


async def cmd_enqueue(args) -> int:
    from job_queue.publisher import TaskPublisher

    settings, broker, _ = _bootstrap(args.config)
    await broker.connect()
    try:
        publisher = TaskPublisher(broker, exchange=settings.broker.exchange)
        count = await publisher.enqueue_many(args.payloads)
    finally:
        await broker.close()
    print(f"Enqueued {count} items.")
    return 0


async def cmd_depths(args) -> int:
    _, broker, topology = _bootstrap(args.config)
    await broker.connect()
    try:
        for name in topology.queue_names:
            print(f"{name:<40} {await broker.queue_length(name):>6}")
    finally:
        await broker.close()
    return 0


async def cmd_workers(args) -> int:
    from channels.email_service import MockEmailService
    from job_queue.pipeline import TieredPipeline
    from job_queue.topology import declare_topology

    settings, broker, topology = _bootstrap(args.config)
    await broker.connect()
    await declare_topology(broker, topology)
    pipeline = TieredPipeline.from_settings(settings, broker, MockEmailService())
    await pipeline.start()
    print("Workers running. Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await pipeline.stop()
        await broker.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Sequential retry pipeline control")
    parser.add_argument("--config", default=None, help="Path to settings YAML")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("declare", help="Declare the topology (idempotent)")
    enqueue = sub.add_parser("enqueue", help="Publish tasks to the main queue")
    enqueue.add_argument("payloads", nargs="+")
    sub.add_parser("depths", help="Show queue depths")
    sub.add_parser("workers", help="Run tier workers and the DLQ sink")

    args = parser.parse_args()
    commands = {
        "declare": cmd_declare,
        "enqueue": cmd_enqueue,
        "depths": cmd_depths,
        "workers": cmd_workers,
    }
    try:
        sys.exit(asyncio.run(commands[args.command](args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
