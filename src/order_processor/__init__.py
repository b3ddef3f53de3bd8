"""
Order Processor Service Package

Background consumer of the order-intake system. The REST front door puts
order messages on an SQS queue; this package drains that queue into
PostgreSQL.

PROCESSOR ARCHITECTURE:
┌─────────────┐     ┌──────────────────┐     ┌────────────────┐
│  SQS queue  │────▶│  OrderConsumer   │────▶│   PostgreSQL   │
│   orders    │     │ poll + breaker + │     │  orders table  │
│             │◀────│ bounded workers  │     │                │
└─────────────┘ ack └──────────────────┘     └────────────────┘
                           │
                 ┌─────────┴──────────┐
                 ▼                    ▼
           /health probe      Prometheus + OTel

PACKAGE STRUCTURE:
- config.py: Settings from environment variables
- credentials.py: Database secret from Secrets Manager (waits for it)
- database.py: Connection pool and transactions
- models.py: Order record and order message validation
- sqs_queue.py: Receive / delete against SQS
- circuit_breaker.py: Queue-failure circuit breaker
- observers.py: Callback interface for passive observers
- consumer.py: Poll loop and bounded-concurrency dispatch
- handler.py: Message -> validated order -> INSERT -> acknowledge
- health.py: Liveness snapshot and /health endpoint
- telemetry.py: Trace context propagation and metrics
- main.py: Entry point

DELIVERY GUARANTEES:
- At-least-once: messages are deleted only after the order committed
- Failed messages reappear after the visibility timeout
- No in-process dead-lettering; configure a redrive policy on the queue
"""

__version__ = "1.0.0"

from src.order_processor.config import ProcessorConfig, load_config
from src.order_processor.consumer import OrderConsumer
from src.order_processor.handler import OrderHandler

__all__ = [
    "OrderConsumer",
    "OrderHandler",
    "ProcessorConfig",
    "load_config",
]
