"""
Reconnection Strategy - exponential backoff delays for session reconnects.

Single Responsibility: compute the wait before the next connection attempt.
The attempt counter itself lives on the session runtime.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class ReconnectionConfig:
    """Configuration for reconnection behavior (seconds)."""

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_exponent: int = 5
    jitter_ratio: float = 0.2


@dataclass
class ReconnectionStrategy:
    """
    Exponential backoff with ±jitter.

    Algorithm:
        base = min(max_delay, base_delay * 2 ** min(attempt, max_exponent))
        delay = base * uniform(1 - jitter_ratio, 1 + jitter_ratio)

    Example progression (base_delay=1, max_delay=30):
        Attempt 1: 2s
        Attempt 2: 4s
        Attempt 3: 8s
        Attempt 4: 16s
        Attempt 5+: 30s (capped)
    """

    config: ReconnectionConfig = field(default_factory=ReconnectionConfig)
    rand: Callable[[], float] = random.random

    def base_delay(self, attempt: int) -> float:
        """Un-jittered delay for an attempt number (monotonic, capped)."""
        exponent = min(max(attempt, 0), self.config.max_exponent)
        return min(self.config.max_delay, self.config.base_delay * (2**exponent))

    def calculate_delay(self, attempt: int) -> float:
        """Jittered delay for an attempt number."""
        spread = self.config.jitter_ratio
        factor = (1 - spread) + self.rand() * (2 * spread)
        return self.base_delay(attempt) * factor
