from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast once a call site has failed ``threshold`` times in a row.

    After ``reset_timeout`` seconds an open breaker lets one trial call
    through; success closes it again, failure re-opens it.
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failures = 0
        self.state = CircuitState.CLOSED
        self._opened_at = 0.0

    def allow(self) -> bool:
        if self.state != CircuitState.OPEN:
            return True
        if self._clock() - self._opened_at >= self.reset_timeout:
            self.state = CircuitState.HALF_OPEN
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self.failures += 1
        if self.state == CircuitState.HALF_OPEN or self.failures >= self.threshold:
            self.state = CircuitState.OPEN
            self._opened_at = self._clock()


class CircuitBreakers:
    """One breaker per key, created on first use. ``threshold=0`` disables them."""

    def __init__(self, threshold: int = 5, reset_timeout: float = 30.0) -> None:
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._breakers: Dict[str, CircuitBreaker] = {}

    @property
    def enabled(self) -> bool:
        return self.threshold > 0

    def get(self, key: str) -> CircuitBreaker:
        breaker = self._breakers.get(key)
        if breaker is None:
            breaker = CircuitBreaker(self.threshold, self.reset_timeout)
            self._breakers[key] = breaker
        return breaker
