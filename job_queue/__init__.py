"""
Sequential retry pipeline — enqueue work, retry it twice with growing
delays, and alert an operator when it still fails.

- Topology: one topic exchange, main / wait / processing queues and a DLQ
- Backends: Redis Streams (production), RabbitMQ via aio-pika, in-memory (dev)
- Workers: one group per tier, each escalating failures forward
"""
