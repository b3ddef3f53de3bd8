"""
Order Processor Service - Main Entry Point

Command-line interface and startup sequence for the SQS order processor.

USAGE:
    python -m src.order_processor.main [options]
    order-processor [options]

OPTIONS:
    --log-level    Logging level (DEBUG, INFO, WARNING, ERROR)
    --log-format   Log format (json or text)
    --help         Show help message

ENVIRONMENT VARIABLES:
    See src/order_processor/config.py for the full list:
    - SQS_QUEUE_URL: Queue to drain (required)
    - DB_SECRET_NAME: Secrets Manager id with database credentials
    - POSTGRES_*: Direct database settings when DB_SECRET_NAME is unset
    - AWS_REGION / AWS_ENDPOINT_URL: AWS (or LocalStack) location
    - DB_POOL_SIZE / CONSUMER_CONCURRENCY: Pool size and processing bound
    - HEALTH_PORT / METRICS_PORT: Probe and Prometheus ports
    - LOG_LEVEL / LOG_FORMAT: Logging

EXIT CODES:
    0  Graceful shutdown (SIGINT / SIGTERM)
    1  Bootstrap failure (configuration, secret, database) or fatal error
"""

import argparse
import logging
import signal
import sys
from typing import Optional

import boto3
from sqlalchemy.engine import URL

from src.order_processor.circuit_breaker import CircuitBreaker
from src.order_processor.config import ProcessorConfig, load_config
from src.order_processor.consumer import OrderConsumer
from src.order_processor.credentials import CredentialResolver
from src.order_processor.database import init_database
from src.order_processor.handler import OrderHandler
from src.order_processor.health import HealthReporter, HealthServer
from src.order_processor.sqs_queue import SQSQueue
from src.order_processor.telemetry import (
    MetricsObserver,
    NoopTracer,
    Tracer,
    setup_tracing,
    shutdown_tracing,
    start_metrics_server,
)
from src.shared.logger import setup_logger

SERVICE_NAME = "order-processor"

# Consumer instance for signal handlers
consumer_instance: Optional[OrderConsumer] = None


def signal_handler(signum: int, frame) -> None:
    """
    Handle SIGINT (Ctrl+C) and SIGTERM (docker stop, Kubernetes).

    Only sets the stop flag; the loop finishes its current chunk, exits,
    and then the database pool is closed.
    """
    signal_name = signal.Signals(signum).name
    logging.getLogger(__name__).info(f"Received {signal_name}, initiating graceful shutdown...")

    if consumer_instance:
        consumer_instance.stop()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="SQS Order Processor Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with default settings
  python -m src.order_processor.main

  # Debug logging in plain text (local development)
  python -m src.order_processor.main --log-level DEBUG --log-format text

Signals:
  SIGINT (Ctrl+C)            Graceful shutdown
  SIGTERM (docker stop)      Graceful shutdown
        """,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (overrides LOG_FORMAT env var)",
    )

    return parser.parse_args(argv)


def resolve_database_url(config: ProcessorConfig) -> URL:
    """
    Database URL from Secrets Manager, or from POSTGRES_* when no secret is set.

    Raises:
        SecretNotFound / SecretStoreUnavailable: Secret bootstrap failed
    """
    if not config.db_secret_name:
        return config.get_database_url()

    client = boto3.client("secretsmanager", **config.get_aws_client_kwargs())
    resolver = CredentialResolver(
        client,
        max_attempts=config.secret_max_attempts,
        initial_delay=config.secret_initial_delay_seconds,
        max_delay=config.secret_max_delay_seconds,
    )
    return resolver.resolve(config.db_secret_name).to_url()


def build_tracer(config: ProcessorConfig) -> Tracer:
    if not config.otel_enabled:
        return NoopTracer()
    return setup_tracing(config.otel_service_name, config.otel_exporter_otlp_endpoint)


def main(argv=None) -> int:
    """
    Main entry point for the order processor.

    STARTUP SEQUENCE:
    1. Parse CLI arguments, load configuration
    2. Set up structured logging and tracing
    3. Resolve database credentials (waits for the secret)
    4. Open the connection pool (fail fast)
    5. Create queue client, handler and consumer
    6. Start health and metrics servers
    7. Register signal handlers, run the poll loop
    """
    args = parse_args(argv)

    try:
        config = load_config()
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    # Root logger so every module logger shares the handler
    setup_logger(
        name="",
        service_name=SERVICE_NAME,
        log_level=config.log_level,
        log_format=config.log_format,
    )
    logger = logging.getLogger(__name__)

    if not config.sqs_queue_url:
        logger.error("SQS_QUEUE_URL is not set")
        return 1

    logger.info(
        "Starting Order Processor Service",
        extra={
            "queue_url": config.sqs_queue_url,
            "db_secret_name": config.db_secret_name,
            "pool_size": config.db_pool_size,
            "concurrency": config.effective_concurrency,
            "log_level": config.log_level,
        },
    )

    try:
        return run_processor(config)
    finally:
        # Flush buffered spans on every exit path, bootstrap failures included
        shutdown_tracing()


def run_processor(config: ProcessorConfig) -> int:
    """
    Bootstrap the processor and run the poll loop until shutdown.

    Returns:
        Exit code (0 graceful shutdown, 1 bootstrap or fatal error)
    """
    global consumer_instance

    logger = logging.getLogger(__name__)

    try:
        tracer = build_tracer(config)
        database_url = resolve_database_url(config)
        db_manager = init_database(database_url, pool_size=config.db_pool_size)
    except Exception:
        logger.error("Failed to bootstrap processor", exc_info=True)
        return 1

    sqs_client = boto3.client("sqs", **config.get_aws_client_kwargs())
    queue = SQSQueue(sqs_client, config.sqs_queue_url)

    health_reporter = HealthReporter(staleness_seconds=config.health_staleness_seconds)
    observers = [health_reporter]
    if config.metrics_enabled:
        observers.append(MetricsObserver())

    handler = OrderHandler(db_manager, limits=config.get_order_limits(), tracer=tracer)
    consumer_instance = OrderConsumer(
        queue,
        handler,
        concurrency=config.effective_concurrency,
        circuit_breaker=CircuitBreaker(
            threshold=config.circuit_breaker_threshold,
            base_delay=config.circuit_breaker_base_delay_seconds,
            max_delay=config.circuit_breaker_max_delay_seconds,
        ),
        observers=observers,
        tracer=tracer,
        wait_time_seconds=config.sqs_wait_time_seconds,
        db_manager=db_manager,
    )

    health_server = None
    try:
        health_server = HealthServer(health_reporter, config.health_host, config.health_port)
        health_server.start()
        if config.metrics_enabled:
            start_metrics_server(config.metrics_port)
    except OSError:
        logger.error("Failed to start health/metrics server", exc_info=True)
        if health_server is not None:
            health_server.stop()
        db_manager.close()
        return 1

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    logger.info("Signal handlers registered (SIGINT, SIGTERM)")

    try:
        consumer_instance.start()
        logger.info("Processor stopped")
        return 0
    except Exception:
        logger.error("Fatal error in processor", exc_info=True)
        return 1
    finally:
        health_server.stop()


if __name__ == "__main__":
    sys.exit(main())
