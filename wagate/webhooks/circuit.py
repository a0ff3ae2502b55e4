"""
Per-URL circuit breaker for webhook delivery.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CircuitState:
    failures: int = 0
    open_until: float = 0.0


class CircuitBreaker:
    """
    Tracks consecutive delivery failures per target URL.

    After ``threshold`` consecutive failures the circuit opens for
    ``open_seconds``; while open, deliveries to that URL are skipped. A single
    success closes it and resets the counter.
    """

    def __init__(
        self,
        threshold: int = 5,
        open_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.open_seconds = open_seconds
        self._clock = clock
        self._states: dict[str, CircuitState] = {}

    def state(self, url: str) -> CircuitState:
        return self._states.setdefault(url, CircuitState())

    def failures(self, url: str) -> int:
        return self.state(url).failures

    def is_open(self, url: str) -> bool:
        state = self._states.get(url)
        return bool(state and state.open_until and self._clock() < state.open_until)

    def record_success(self, url: str) -> None:
        state = self.state(url)
        state.failures = 0
        state.open_until = 0.0

    def record_failure(self, url: str) -> None:
        state = self.state(url)
        state.failures += 1
        if state.failures >= self.threshold:
            state.open_until = self._clock() + self.open_seconds
            logger.warning(
                "Webhook circuit opened for %s after %d failures (%.0fs)",
                url,
                state.failures,
                self.open_seconds,
            )
