"""
Tests for the in-memory rate limit, cooldown and quota counters.
"""

from wagate.api.limits import FixedWindowCounter, RecipientCooldown


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowCounter:
    def test_counts_within_window(self):
        clock = Clock()
        counter = FixedWindowCounter(max_hits=2, window_seconds=60, clock=clock)

        first = counter.hit("k")
        second = counter.hit("k")
        third = counter.hit("k")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert not third.allowed
        assert third.retry_after == 60
        assert third.headers("X-RateLimit") == {
            "X-RateLimit-Limit": "2",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "1060",
        }

    def test_window_resets(self):
        clock = Clock()
        counter = FixedWindowCounter(max_hits=1, window_seconds=60, clock=clock)
        counter.hit("k")

        clock.now += 61
        assert counter.hit("k").allowed

    def test_keys_are_independent(self):
        counter = FixedWindowCounter(max_hits=1, window_seconds=60, clock=Clock())
        counter.hit("a")
        assert counter.hit("b").allowed


class TestRecipientCooldown:
    def test_blocks_same_recipient(self):
        clock = Clock()
        cooldown = RecipientCooldown(cooldown_seconds=3, clock=clock)

        assert cooldown.check("k", "62812") == 0
        assert cooldown.check("k", "62812") == 3
        assert cooldown.check("k", "62813") == 0
        assert cooldown.check("other", "62812") == 0

        clock.now += 3.5
        assert cooldown.check("k", "62812") == 0

    def test_zero_cooldown_never_blocks(self):
        cooldown = RecipientCooldown(cooldown_seconds=0, clock=Clock())
        assert cooldown.check("k", "1") == 0
        assert cooldown.check("k", "1") == 0
