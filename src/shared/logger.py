"""
Structured JSON Logging for the Order Processor

This module provides structured logging for the order processing service.
Every log line is one JSON object so it can be shipped straight to a log
aggregator (CloudWatch, Loki, ELK) and queried by field.

WHY STRUCTURED LOGGING HERE?
- The poll loop and worker threads interleave their output
- correlation_id ties every line of one order together across threads
- trace_id / span_id tie a log line to the distributed trace of the order
- Queue failures, circuit transitions and per-message failures must be
  diagnosable from logs alone (the health endpoint is binary)

EXAMPLE OUTPUT:
{
  "timestamp": "2025-01-10T14:30:00.123Z",
  "level": "INFO",
  "service": "order-processor",
  "logger": "src.order_processor.handler",
  "correlation_id": "c0ffee-42",
  "trace_id": "4bf92f3577b34da6a3ce929d0e0e4736",
  "message": "Order stored",
  "extra": {"order_id": 17, "user_id": 1}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from opentelemetry import trace

# Attributes every LogRecord carries; anything else was passed via extra={...}
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "correlation_id",
}


# ==============================================================================
# JSON FORMATTER
# ==============================================================================


class JSONFormatter(logging.Formatter):
    """
    Log formatter that renders each record as a single JSON line.

    Fields:
    - timestamp: ISO 8601 UTC with milliseconds
    - level, service, logger, message
    - correlation_id: order correlation id (if provided)
    - trace_id / span_id: active OpenTelemetry span (if one is recording)
    - exception: formatted traceback (if exc_info)
    - extra: any additional fields passed through extra={...}
    """

    def __init__(self, service_name: str = "order-processor", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "correlation_id", None) is not None:
            log_data["correlation_id"] = record.correlation_id

        log_data.update(self._trace_fields())

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {
                k: v
                for k, v in record.__dict__.items()
                if k not in _STANDARD_ATTRS and not k.startswith("_")
            }
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)

    @staticmethod
    def _trace_fields() -> Dict[str, str]:
        """Return trace/span ids of the current span, or nothing outside a span."""
        span_context = trace.get_current_span().get_span_context()
        if not span_context.is_valid:
            return {}
        return {
            "trace_id": format(span_context.trace_id, "032x"),
            "span_id": format(span_context.span_id, "016x"),
        }

    @staticmethod
    def _format_timestamp(created: float) -> str:
        """Format a record timestamp as e.g. 2025-01-10T14:30:00.123Z."""
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ==============================================================================
# PLAIN TEXT FORMATTER (for development)
# ==============================================================================


class PlainTextFormatter(logging.Formatter):
    """
    Human-readable formatter for local development.

    Format: [2025-01-10 14:30:00] INFO [order-processor] (worker-2) Order stored
    """

    def __init__(self, service_name: str = "order-processor"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] (%(threadName)s) %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# ==============================================================================
# LOGGER SETUP
# ==============================================================================


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Configure a logger with a stdout handler in JSON or text format.

    Pass name="" to configure the root logger, so that every module logger
    obtained with logging.getLogger(__name__) shares the same handler.

    Args:
        name: Logger name ("" for root)
        service_name: Service identifier written into every line
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"

    Returns:
        Configured logging.Logger instance

    Example:
        >>> logger = setup_logger("", "order-processor", "INFO", "json")
        >>> logger.info("Processor started", extra={"concurrency": 5})
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Prevent duplicate handlers if already configured
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)

    if log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# ==============================================================================
# CORRELATION ID ADAPTER
# ==============================================================================


class CorrelationAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps correlation_id on every record.

    One adapter is created per queue message, so every line logged while
    handling that order carries the producer-supplied correlation id.

    Example:
        >>> order_logger = CorrelationAdapter(logger, {"correlation_id": "c0ffee-42"})
        >>> order_logger.info("Validating order")
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        if "correlation_id" in self.extra:
            extra["correlation_id"] = self.extra["correlation_id"]
        kwargs["extra"] = extra
        return msg, kwargs
