"""
Queue Topology — The fixed exchange/queue/binding graph of the retry ladder.

  publish ──▶ sequential.main ──────────────────▶ [sequential.queue]            main worker
                                                        │ fail
  ┌─────── sequential.retry.wait ◀──────────────────────┘
  ▼
  [sequential.retry.wait]  TTL 1s ── expire ──▶ sequential.retry.process
                                                        ▼
                                            [sequential.retry.processing]      retry-1 worker
                                                        │ fail
  ┌─────── sequential.second.retry.wait ◀───────────────┘
  ▼
  [sequential.second.retry.wait]  TTL 2s ── expire ──▶ sequential.second.retry.process
                                                        ▼
                                            [sequential.second.retry.processing]  retry-2 worker
                                                        │ fail
                                       sequential.dlq ──┘
                                                        ▼
                                                 [sequential.dlq]              dead-letter sink

The wait queues are parking lots, not failure queues: broker-side TTL
expiry forwards each message to the next processing queue. Permanent
failure is only ever published explicitly, into the DLQ.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from models.schemas import RetryTier

if TYPE_CHECKING:
    from job_queue.broker import MessageBroker

logger = structlog.get_logger()

EXCHANGE = "sequential-exchange"


class RoutingKeys:
    MAIN = "sequential.main"
    RETRY_WAIT = "sequential.retry.wait"
    RETRY_PROCESS = "sequential.retry.process"
    SECOND_RETRY_WAIT = "sequential.second.retry.wait"
    SECOND_RETRY_PROCESS = "sequential.second.retry.process"
    DLQ = "sequential.dlq"


class QueueNames:
    MAIN = "sequential.queue"
    RETRY_WAIT = "sequential.retry.wait"
    RETRY_PROCESSING = "sequential.retry.processing"
    SECOND_RETRY_WAIT = "sequential.second.retry.wait"
    SECOND_RETRY_PROCESSING = "sequential.second.retry.processing"
    DLQ = "sequential.dlq"


DEFAULT_RETRY_WAIT_MS = 1000
DEFAULT_SECOND_RETRY_WAIT_MS = 2000


# ──────────────────────────────────────────────────────────────
#  Declarations
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExchangeSpec:
    name: str
    type: str = "topic"
    durable: bool = True


@dataclass(frozen=True)
class QueueSpec:
    name: str
    durable: bool = True
    ttl_ms: Optional[int] = None
    dead_letter_exchange: Optional[str] = None
    dead_letter_routing_key: Optional[str] = None

    def arguments(self) -> dict[str, Any]:
        """AMQP-style queue arguments (x-message-ttl, x-dead-letter-*)."""
        args: dict[str, Any] = {}
        if self.ttl_ms is not None:
            args["x-message-ttl"] = self.ttl_ms
        if self.dead_letter_exchange is not None:
            args["x-dead-letter-exchange"] = self.dead_letter_exchange
        if self.dead_letter_routing_key is not None:
            args["x-dead-letter-routing-key"] = self.dead_letter_routing_key
        return args


@dataclass(frozen=True)
class BindingSpec:
    queue: str
    exchange: str
    routing_key: str


@dataclass(frozen=True)
class TierRoute:
    """Where a worker tier reads from and where its failures go."""
    tier: RetryTier
    queue: str
    escalation_key: Optional[str]       # None for the terminal tier


@dataclass(frozen=True)
class Topology:
    exchange: ExchangeSpec
    queues: tuple[QueueSpec, ...] = field(default_factory=tuple)
    bindings: tuple[BindingSpec, ...] = field(default_factory=tuple)

    def queue(self, name: str) -> QueueSpec:
        for spec in self.queues:
            if spec.name == name:
                return spec
        raise KeyError(name)

    @property
    def queue_names(self) -> list[str]:
        return [q.name for q in self.queues]


TIER_ROUTES: dict[RetryTier, TierRoute] = {
    RetryTier.MAIN: TierRoute(RetryTier.MAIN, QueueNames.MAIN, RoutingKeys.RETRY_WAIT),
    RetryTier.RETRY_1: TierRoute(
        RetryTier.RETRY_1, QueueNames.RETRY_PROCESSING, RoutingKeys.SECOND_RETRY_WAIT
    ),
    RetryTier.RETRY_2: TierRoute(
        RetryTier.RETRY_2, QueueNames.SECOND_RETRY_PROCESSING, RoutingKeys.DLQ
    ),
    RetryTier.DEAD_LETTER: TierRoute(RetryTier.DEAD_LETTER, QueueNames.DLQ, None),
}


def build_topology(
    exchange: str = EXCHANGE,
    retry_wait_ms: int = DEFAULT_RETRY_WAIT_MS,
    second_retry_wait_ms: int = DEFAULT_SECOND_RETRY_WAIT_MS,
) -> Topology:
    """Build the retry ladder topology on the given exchange."""
    queues = (
        QueueSpec(QueueNames.MAIN),
        QueueSpec(
            QueueNames.RETRY_WAIT,
            ttl_ms=retry_wait_ms,
            dead_letter_exchange=exchange,
            dead_letter_routing_key=RoutingKeys.RETRY_PROCESS,
        ),
        QueueSpec(QueueNames.RETRY_PROCESSING),
        QueueSpec(
            QueueNames.SECOND_RETRY_WAIT,
            ttl_ms=second_retry_wait_ms,
            dead_letter_exchange=exchange,
            dead_letter_routing_key=RoutingKeys.SECOND_RETRY_PROCESS,
        ),
        QueueSpec(QueueNames.SECOND_RETRY_PROCESSING),
        QueueSpec(QueueNames.DLQ),
    )
    bindings = (
        BindingSpec(QueueNames.MAIN, exchange, RoutingKeys.MAIN),
        BindingSpec(QueueNames.RETRY_WAIT, exchange, RoutingKeys.RETRY_WAIT),
        BindingSpec(QueueNames.RETRY_PROCESSING, exchange, RoutingKeys.RETRY_PROCESS),
        BindingSpec(QueueNames.SECOND_RETRY_WAIT, exchange, RoutingKeys.SECOND_RETRY_WAIT),
        BindingSpec(
            QueueNames.SECOND_RETRY_PROCESSING, exchange, RoutingKeys.SECOND_RETRY_PROCESS
        ),
        BindingSpec(QueueNames.DLQ, exchange, RoutingKeys.DLQ),
    )
    return Topology(exchange=ExchangeSpec(exchange), queues=queues, bindings=bindings)


async def declare_topology(broker: MessageBroker, topology: Topology):
    """Declare every exchange, queue and binding. Safe to call repeatedly."""
    await broker.declare_exchange(topology.exchange)
    for spec in topology.queues:
        await broker.declare_queue(spec)
    for binding in topology.bindings:
        await broker.bind_queue(binding)
    logger.info("topology_declared",
                exchange=topology.exchange.name,
                queues=len(topology.queues),
                bindings=len(topology.bindings))


def topic_matches(binding_key: str, routing_key: str) -> bool:
    """
    AMQP topic matching: '*' matches exactly one word, '#' zero or more.
    Words are separated by dots.
    """
    pattern = binding_key.split(".") if binding_key else []
    words = routing_key.split(".") if routing_key else []
    return _match_words(pattern, words)


def _match_words(pattern: list[str], words: list[str]) -> bool:
    if not pattern:
        return not words
    head, rest = pattern[0], pattern[1:]
    if head == "#":
        # '#' swallows any number of words, including none
        return any(_match_words(rest, words[i:]) for i in range(len(words) + 1))
    if not words:
        return False
    if head == "*" or head == words[0]:
        return _match_words(rest, words[1:])
    return False
