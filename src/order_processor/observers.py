"""
Consumer observer interface.

The poll loop reports what happens to passive observers (health reporter,
Prometheus metrics). Observers must be cheap and must not raise; the
consumer logs and swallows observer errors so that monitoring can never stop
order processing.

Message callbacks are invoked from worker threads, poll callbacks from the
poll loop thread.
"""

import logging
from typing import Iterable, List

from src.order_processor.sqs_queue import QueueMessage

logger = logging.getLogger(__name__)


class ConsumerObserver:
    """Base observer; every hook is a no-op so subclasses override what they need."""

    def on_start(self) -> None:
        pass

    def on_poll_success(self, message_count: int) -> None:
        pass

    def on_poll_failure(self, error: Exception, consecutive_failures: int) -> None:
        pass

    def on_circuit_state_change(self, is_open: bool) -> None:
        pass

    def on_message_processed(self, message: QueueMessage) -> None:
        pass

    def on_message_failed(self, message: QueueMessage) -> None:
        pass


class CompositeObserver(ConsumerObserver):
    """Fans every callback out to a list of observers."""

    def __init__(self, observers: Iterable[ConsumerObserver] = ()):
        self.observers: List[ConsumerObserver] = list(observers)

    def _notify(self, hook: str, *args) -> None:
        for observer in self.observers:
            try:
                getattr(observer, hook)(*args)
            except Exception:
                logger.error(
                    "Observer callback failed",
                    exc_info=True,
                    extra={"observer": type(observer).__name__, "hook": hook},
                )

    def on_start(self) -> None:
        self._notify("on_start")

    def on_poll_success(self, message_count: int) -> None:
        self._notify("on_poll_success", message_count)

    def on_poll_failure(self, error: Exception, consecutive_failures: int) -> None:
        self._notify("on_poll_failure", error, consecutive_failures)

    def on_circuit_state_change(self, is_open: bool) -> None:
        self._notify("on_circuit_state_change", is_open)

    def on_message_processed(self, message: QueueMessage) -> None:
        self._notify("on_message_processed", message)

    def on_message_failed(self, message: QueueMessage) -> None:
        self._notify("on_message_failed", message)
