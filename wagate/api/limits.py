"""
In-memory request limits: fixed-window rate limiting, per-recipient
cooldown and per-key send quota.

Counters live in process memory and reset on restart (single-process
deployment). Expired entries are dropped lazily on access.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class WindowState:
    count: int
    reset_at: float  # epoch seconds


@dataclass
class LimitResult:
    """Outcome of one counted request, with the values for response headers."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0

    def headers(self, prefix: str) -> dict[str, str]:
        return {
            f"{prefix}-Limit": str(self.limit),
            f"{prefix}-Remaining": str(self.remaining),
            f"{prefix}-Reset": str(math.floor(self.reset_at)),
        }


class FixedWindowCounter:
    """Counts hits per key in fixed windows of ``window_seconds``."""

    def __init__(
        self,
        max_hits: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, WindowState] = {}

    def hit(self, key: str) -> LimitResult:
        now = self._clock()
        state = self._windows.get(key)
        if state is None or now > state.reset_at:
            state = WindowState(count=0, reset_at=now + self.window_seconds)
            self._windows[key] = state
        state.count += 1
        return LimitResult(
            allowed=state.count <= self.max_hits,
            limit=self.max_hits,
            remaining=max(0, self.max_hits - state.count),
            reset_at=state.reset_at,
            retry_after=max(0, math.ceil(state.reset_at - now)),
        )

    def reset(self) -> None:
        self._windows.clear()


class RecipientCooldown:
    """Blocks repeated sends from one key to the same recipient within a cooldown."""

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.time):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._until: dict[str, float] = {}

    def check(self, key: str, recipient: str) -> int:
        """
        Register a send attempt.

        Returns:
            0 if allowed, otherwise the seconds to wait (Retry-After)
        """
        now = self._clock()
        slot = f"{key}:{recipient}"
        until = self._until.get(slot)
        if until is not None and now < until:
            return max(0, math.ceil(until - now))
        self._until[slot] = now + self.cooldown_seconds
        return 0

    def reset(self) -> None:
        self._until.clear()


@dataclass
class RequestLimits:
    """The limiters shared by all API routes of one application."""

    rate: FixedWindowCounter
    quota: FixedWindowCounter
    cooldown: RecipientCooldown

    @classmethod
    def from_settings(cls, settings) -> "RequestLimits":
        return cls(
            rate=FixedWindowCounter(settings.rate_limit_max, settings.rate_limit_window_ms / 1000),
            quota=FixedWindowCounter(settings.quota_max, settings.quota_window_ms / 1000),
            cooldown=RecipientCooldown(settings.spam_cooldown_ms / 1000),
        )
