"""
SQS Order Consumer Engine

This module implements the poll loop that drains the order queue into the
database.

CONSUMER LIFECYCLE:
┌─────────────────────────────────────────────────────────────────────────┐
│  One iteration of the poll loop                                         │
├─────────────────────────────────────────────────────────────────────────┤
│  1. Circuit OPEN? -> sleep min(base * 2^(failures - threshold), max)    │
│  2. ReceiveMessage (long poll 20s, up to min(concurrency, 10) msgs)     │
│  3. Success -> reset breaker, notify observers                          │
│  4. Dispatch messages in chunks of `concurrency`, each chunk in         │
│     parallel, waiting for the whole chunk before the next               │
│  5. Failure -> count it, open the circuit at the threshold              │
│  6. stop() requested? -> leave the loop                                 │
└─────────────────────────────────────────────────────────────────────────┘

BOUNDED CONCURRENCY:
- At most `concurrency` messages are processed at once
- concurrency defaults to the database pool size, so every in-flight order
  can hold a connection without waiting on the pool
- Chunking (rather than submitting the whole batch) keeps the bound even if
  the queue returns more messages than the pool can serve

AT-LEAST-ONCE DELIVERY:
- A message is deleted only after its order committed
- Failed messages are left alone and become visible again after the
  queue's visibility timeout
- Messages are independent: one failure never fails its siblings

GRACEFUL SHUTDOWN:
- stop() sets a flag checked once per iteration
- The chunk being processed is allowed to finish
- The worker pool, then the database pool, are closed after the loop exits
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from src.order_processor.circuit_breaker import CircuitBreaker
from src.order_processor.database import DatabaseManager
from src.order_processor.handler import OrderHandler
from src.order_processor.observers import CompositeObserver, ConsumerObserver
from src.order_processor.sqs_queue import (
    SQS_MAX_MESSAGES_PER_RECEIVE,
    QueueAccessError,
    QueueMessage,
    SQSQueue,
)
from src.order_processor.telemetry import NoopTracer, Tracer

# ==============================================================================
# ORDER CONSUMER
# ==============================================================================


class OrderConsumer:
    """
    Poll loop, circuit breaker and bounded-concurrency dispatcher.

    Attributes:
        queue: Queue to receive from and acknowledge to
        handler: Order handler invoked once per message
        concurrency: Maximum messages processed simultaneously
        circuit_breaker: Breaker guarding the receive call
        observer: Fan-out of consumer callbacks (health, metrics)
        tracer: Tracing capability
        running: False once stop() has been requested
    """

    def __init__(
        self,
        queue: SQSQueue,
        handler: OrderHandler,
        concurrency: int = 5,
        circuit_breaker: Optional[CircuitBreaker] = None,
        observers: Optional[List[ConsumerObserver]] = None,
        tracer: Optional[Tracer] = None,
        wait_time_seconds: int = 20,
        db_manager: Optional[DatabaseManager] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the consumer.

        Args:
            queue: Order queue
            handler: Per-message order handler
            concurrency: Processing bound (match the DB pool size)
            circuit_breaker: Breaker instance (default: threshold 5, 5s..60s)
            observers: Passive observers (health reporter, metrics)
            tracer: Tracing capability (default: no-op)
            wait_time_seconds: Long-poll wait for ReceiveMessage
            db_manager: Pool to close after the loop exits (optional)
            sleep: Backoff sleep; defaults to an interruptible wait on stop()
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.observer = CompositeObserver(observers or [])
        self.tracer = tracer or NoopTracer()
        self.wait_time_seconds = wait_time_seconds
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self._sleep = sleep or self._stop_event.wait
        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="order-worker"
        )

        # Metrics counters
        self.messages_processed = 0
        self.messages_failed = 0
        self._counter_lock = threading.Lock()

        self.logger.info(
            "Order consumer initialized",
            extra={
                "queue_url": getattr(queue, "queue_url", None),
                "concurrency": concurrency,
                "circuit_threshold": self.circuit_breaker.threshold,
            },
        )

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    @property
    def max_messages(self) -> int:
        return min(self.concurrency, SQS_MAX_MESSAGES_PER_RECEIVE)

    def start(self) -> None:
        """
        Run the poll loop until stop() is called.

        Queue and message errors never leave this loop; anything else
        unexpected is logged and re-raised after shutdown.
        """
        self.logger.info("Starting consumer loop...")
        self.observer.on_start()

        try:
            while self.running:
                self.poll_once()
        except Exception:
            self.logger.error("Fatal error in consumer loop", exc_info=True)
            raise
        finally:
            self._shutdown()

    def poll_once(self) -> int:
        """
        Run one iteration: backoff if open, receive, dispatch.

        Returns:
            Number of messages received (0 on a failed receive, or when
            stop() interrupted the backoff wait)
        """
        if self.circuit_breaker.is_open:
            delay = self.circuit_breaker.backoff_delay()
            self.logger.warning(
                f"Circuit open, waiting {delay:.1f}s before next poll",
                extra={"consecutive_failures": self.circuit_breaker.consecutive_failures},
            )
            self._sleep(delay)
            if not self.running:
                return 0

        try:
            messages = self.queue.receive(
                max_messages=self.max_messages,
                wait_time_seconds=self.wait_time_seconds,
            )
        except QueueAccessError as e:
            self._handle_poll_failure(e)
            return 0

        if self.circuit_breaker.record_success():
            self.logger.info("Queue reachable again, circuit closed")
            self.observer.on_circuit_state_change(False)
        self.observer.on_poll_success(len(messages))

        if messages:
            self.logger.debug("Received messages", extra={"count": len(messages)})
            self._dispatch(messages)

        return len(messages)

    def _handle_poll_failure(self, error: QueueAccessError) -> None:
        just_opened = self.circuit_breaker.record_failure()
        failures = self.circuit_breaker.consecutive_failures

        self.logger.error(
            "Error polling queue",
            extra={"consecutive_failures": failures, "error": str(error)},
        )
        if just_opened:
            self.logger.error(
                f"Circuit breaker opened after {failures} consecutive failures",
                extra={"consecutive_failures": failures},
            )
            self.observer.on_circuit_state_change(True)

        self.observer.on_poll_failure(error, failures)

    def _dispatch(self, messages: List[QueueMessage]) -> None:
        """Process messages in chunks of `concurrency`, one chunk at a time."""
        for start in range(0, len(messages), self.concurrency):
            chunk = messages[start:start + self.concurrency]
            futures = [self._executor.submit(self._process_message, msg) for msg in chunk]
            wait(futures)

    def _process_message(self, message: QueueMessage) -> None:
        """
        Process one message on a worker thread.

        Any error is caught here so siblings in the chunk are unaffected.
        """
        try:
            with self.tracer.message_span(message):
                succeeded = self.handler.process(message, self._acknowledge)
        except Exception:
            self.logger.error(
                "Unexpected error processing message",
                exc_info=True,
                extra={"message_id": message.message_id},
            )
            succeeded = False

        with self._counter_lock:
            if succeeded:
                self.messages_processed += 1
            else:
                self.messages_failed += 1

        if succeeded:
            self.observer.on_message_processed(message)
        else:
            self.observer.on_message_failed(message)

    def _acknowledge(self, receipt_handle: str) -> bool:
        return self.queue.delete(receipt_handle)

    def stop(self) -> None:
        """
        Signal the consumer to stop gracefully.

        The loop finishes the current iteration, then exits. Safe to call
        from a signal handler.
        """
        self.logger.info("Stopping consumer...")
        self._stop_event.set()

    def _shutdown(self) -> None:
        """
        SHUTDOWN SEQUENCE:
        1. Wait for worker threads (no chunk is in flight at this point)
        2. Close database connections
        3. Log final counters
        """
        self._executor.shutdown(wait=True)

        if self.db_manager is not None:
            try:
                self.db_manager.close()
            except Exception:
                self.logger.error("Error closing database", exc_info=True)

        self.logger.info(
            "Consumer shutdown complete",
            extra={
                "messages_processed": self.messages_processed,
                "messages_failed": self.messages_failed,
            },
        )
