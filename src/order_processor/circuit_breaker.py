"""
Circuit Breaker for Queue Access

Two-state breaker guarding the consumer's receive call.

STATES:
- CLOSED: normal polling
- OPEN: consecutive failures reached the threshold; the poll loop sleeps
  before each further receive attempt

TRANSITIONS:
- any successful receive          -> failures = 0, CLOSED
- failure, failures == threshold  -> OPEN (reported once)
- failure while OPEN              -> stays OPEN, backoff grows

BACKOFF WHILE OPEN:
    delay = min(base_delay * 2 ** (failures - threshold), max_delay)

    threshold=5, base=5s, max=60s:
    failures 5 -> 5s, 6 -> 10s, 7 -> 20s, 8 -> 40s, 9+ -> 60s

The breaker is owned by a single poll loop and is not locked. The health
endpoint only reads it.
"""

from enum import Enum


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker with capped exponential backoff.

    Attributes:
        threshold: Failures needed to open the circuit
        base_delay: Backoff at the moment the circuit opens (seconds)
        max_delay: Backoff cap (seconds)
        consecutive_failures: Failures since the last successful poll
    """

    def __init__(self, threshold: int = 5, base_delay: float = 5.0, max_delay: float = 60.0):
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.consecutive_failures = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN if self._open else CircuitState.CLOSED

    def backoff_delay(self) -> float:
        """Seconds to wait before the next receive; 0 while CLOSED."""
        if not self._open:
            return 0.0
        exponent = max(self.consecutive_failures - self.threshold, 0)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def record_success(self) -> bool:
        """
        Reset after a successful poll.

        Returns:
            True if this closed a previously open circuit
        """
        was_open = self._open
        self.consecutive_failures = 0
        self._open = False
        return was_open

    def record_failure(self) -> bool:
        """
        Count a failed poll.

        Returns:
            True only on the failure that opens the circuit
        """
        self.consecutive_failures += 1
        if not self._open and self.consecutive_failures >= self.threshold:
            self._open = True
            return True
        return False
