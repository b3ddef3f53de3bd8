"""
Telemetry Bridge: Tracing and Metrics

TRACING (OpenTelemetry):
- The REST front door injects W3C trace context into SQS message attributes
  (traceparent / tracestate)
- For each message the consumer extracts that context and opens a CONSUMER
  span as its child, so one trace covers HTTP request -> queue -> insert
- The handler tags the span with correlation id and generated order id
- Tracing is a capability chosen at startup: NoopTracer when disabled,
  OpenTelemetryTracer when enabled. Control flow never depends on it.

METRICS (Prometheus):
    orders_messages_received_total   messages returned by ReceiveMessage
    orders_messages_processed_total  messages stored and acknowledged
    orders_messages_failed_total     messages left for redelivery
    orders_poll_failures_total       failed ReceiveMessage calls
    orders_circuit_open              0 = closed, 1 = open
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import propagate, trace
from opentelemetry.trace import SpanKind, Status, StatusCode
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from src.order_processor.observers import ConsumerObserver
from src.order_processor.sqs_queue import QueueMessage

logger = logging.getLogger(__name__)

SPAN_NAME = "orders process"


# ==============================================================================
# TRACING
# ==============================================================================


class Tracer:
    """Tracing capability used by the consumer and the order handler."""

    @contextmanager
    def message_span(self, message: QueueMessage) -> Iterator[Any]:
        yield None

    def annotate(self, **attributes: Any) -> None:
        pass

    def record_error(self, error: BaseException) -> None:
        pass


class NoopTracer(Tracer):
    """Tracing disabled."""


class OpenTelemetryTracer(Tracer):
    """
    Tracer backed by the OpenTelemetry API.

    Uses the globally configured propagator (W3C tracecontext by default)
    to read the parent context from the message attributes.
    """

    def __init__(self, tracer: Optional[trace.Tracer] = None):
        self._tracer = tracer or trace.get_tracer(__name__)

    @contextmanager
    def message_span(self, message: QueueMessage) -> Iterator[Any]:
        parent_context = propagate.extract(message.attributes)
        with self._tracer.start_as_current_span(
            SPAN_NAME,
            context=parent_context,
            kind=SpanKind.CONSUMER,
            attributes={
                "messaging.system": "aws_sqs",
                "messaging.message.id": message.message_id,
                "messaging.sqs.receive_count": message.receive_count,
            },
        ) as span:
            yield span

    def annotate(self, **attributes: Any) -> None:
        span = trace.get_current_span()
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)

    def record_error(self, error: BaseException) -> None:
        span = trace.get_current_span()
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))


def setup_tracing(service_name: str, otlp_endpoint: str) -> OpenTelemetryTracer:
    """
    Install an SDK TracerProvider exporting over OTLP/gRPC.

    Returns:
        OpenTelemetryTracer bound to the new provider
    """
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)

    logger.info(
        "OpenTelemetry tracing initialized",
        extra={"service_name": service_name, "otlp_endpoint": otlp_endpoint},
    )
    return OpenTelemetryTracer(trace.get_tracer(service_name))


def shutdown_tracing() -> None:
    """Flush pending spans if an SDK provider is installed."""
    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()


# ==============================================================================
# METRICS
# ==============================================================================


class MetricsObserver(ConsumerObserver):
    """
    Prometheus counters and circuit gauge fed by consumer callbacks.

    Args:
        registry: Collector registry (a fresh one per test; the global
            REGISTRY in production)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        self.messages_received = Counter(
            "orders_messages_received",
            "Messages returned by ReceiveMessage",
            registry=registry,
        )
        self.messages_processed = Counter(
            "orders_messages_processed",
            "Orders stored and acknowledged",
            registry=registry,
        )
        self.messages_failed = Counter(
            "orders_messages_failed",
            "Messages left on the queue for redelivery",
            registry=registry,
        )
        self.poll_failures = Counter(
            "orders_poll_failures",
            "Failed ReceiveMessage calls",
            registry=registry,
        )
        self.circuit_open = Gauge(
            "orders_circuit_open",
            "Queue circuit breaker state (0=closed, 1=open)",
            registry=registry,
        )

    def on_poll_success(self, message_count: int) -> None:
        if message_count:
            self.messages_received.inc(message_count)

    def on_poll_failure(self, error: Exception, consecutive_failures: int) -> None:
        self.poll_failures.inc()

    def on_circuit_state_change(self, is_open: bool) -> None:
        self.circuit_open.set(1 if is_open else 0)

    def on_message_processed(self, message: QueueMessage) -> None:
        self.messages_processed.inc()

    def on_message_failed(self, message: QueueMessage) -> None:
        self.messages_failed.inc()


def start_metrics_server(port: int, registry: Optional[CollectorRegistry] = None) -> None:
    """Expose /metrics on a background thread."""
    start_http_server(port, registry=registry if registry is not None else REGISTRY)
    logger.info("Prometheus metrics server started", extra={"port": port})
