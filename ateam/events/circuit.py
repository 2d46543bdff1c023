"""
Circuit Breaker for event feed polling

Counts consecutive failed polls of one feed connection. Once the count
reaches the threshold the circuit opens for good and the connection is
closed by its owner; a single successful poll resets the count.
"""

import time
from dataclasses import dataclass
from enum import Enum, auto

from ateam.config import MAX_CONSECUTIVE_ERRORS


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = auto()  # Polling normally
    OPEN = auto()  # Tripped, connection must close


@dataclass
class CircuitStats:
    """Statistics for one feed connection."""

    total_polls: int = 0
    successful_polls: int = 0
    failed_polls: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    last_error: str | None = None


class PollCircuitBreaker:
    """
    Consecutive-failure counter for a single feed connection.

    Each connection owns its own breaker, so one failing observer never
    affects another.
    """

    def __init__(self, failure_threshold: int = MAX_CONSECUTIVE_ERRORS):
        """
        Args:
            failure_threshold: Consecutive failures that open the circuit
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self._state = CircuitState.CLOSED
        self._consecutive_errors = 0
        self._stats = CircuitStats()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful poll."""
        self._stats.total_polls += 1
        self._stats.successful_polls += 1
        self._stats.last_success_time = time.time()

        if self._state == CircuitState.CLOSED:
            self._consecutive_errors = 0

    def record_failure(self, error: BaseException | str | None = None) -> bool:
        """
        Record a failed poll.

        Returns:
            True if this failure opened the circuit
        """
        self._stats.total_polls += 1
        self._stats.failed_polls += 1
        self._stats.last_failure_time = time.time()
        if error is not None:
            self._stats.last_error = str(error)

        if self._state == CircuitState.OPEN:
            return False

        self._consecutive_errors += 1
        if self._consecutive_errors >= self.failure_threshold:
            self._state = CircuitState.OPEN
            return True
        return False
