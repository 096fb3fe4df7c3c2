"""Tests for DecayLimiter - login-code request throttling."""

import pytest

from auth.rate_limiter import DecayLimiter
from auth.exceptions import RateLimitedError


@pytest.fixture
def rate_limiter(clock):
    """Limiter with a low threshold for faster tests."""
    return DecayLimiter(
        threshold=3,
        half_life_seconds=600,
        normalize=str.lower,
        clock=clock,
    )


class TestInit:
    """Test construction bounds."""

    def test_non_positive_threshold_rejected(self):
        with pytest.raises(ValueError):
            DecayLimiter(threshold=0, half_life_seconds=60)

    def test_non_positive_half_life_rejected(self):
        with pytest.raises(ValueError):
            DecayLimiter(threshold=1, half_life_seconds=0)


class TestHit:
    """Test counting and admission."""

    def test_exactly_threshold_hits_succeed(self, rate_limiter):
        """The first `threshold` hits pass; the next one fails."""
        results = [rate_limiter.hit("1.2.3.4") for _ in range(4)]
        assert results == [True, True, True, False]

    def test_rejected_hits_still_count(self, rate_limiter, clock):
        """Hammering while limited extends the lockout."""
        for _ in range(20):
            rate_limiter.hit("1.2.3.4")

        clock.advance(600)  # one half-life: counter ~10.5

        assert rate_limiter.hit("1.2.3.4") is False

    def test_keys_tracked_separately(self, rate_limiter):
        for _ in range(3):
            rate_limiter.hit("user1@example.com")

        assert rate_limiter.hit("user2@example.com") is True

    def test_keys_normalized(self, rate_limiter):
        """Email lookups are case-insensitive."""
        for _ in range(3):
            rate_limiter.hit("CASE@example.com")

        assert rate_limiter.hit("case@EXAMPLE.com") is False


class TestDecay:
    """Test counter decay over time."""

    def test_allowance_recovers_after_half_life(self, rate_limiter, clock):
        """Counter of 3 halves to 1.5, leaving room for one more hit."""
        for _ in range(3):
            rate_limiter.hit("1.2.3.4")
        assert rate_limiter.remaining("1.2.3.4") == 0

        clock.advance(600)

        assert rate_limiter.remaining("1.2.3.4") == 1
        assert rate_limiter.hit("1.2.3.4") is True

    def test_counter_decays_monotonically(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.hit("1.2.3.4")

        seen = []
        for _ in range(5):
            clock.advance(300)
            seen.append(rate_limiter.retry_after("1.2.3.4"))

        assert seen == sorted(seen, reverse=True)

    def test_fully_recovers_after_long_idle(self, rate_limiter, clock):
        for _ in range(10):
            rate_limiter.hit("1.2.3.4")

        clock.advance(600 * 20)

        assert rate_limiter.retry_after("1.2.3.4") == 1
        assert rate_limiter.hit("1.2.3.4") is True


class TestCheck:
    """Test the raising variant."""

    def test_within_limit_passes(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check("allowed@example.com")

    def test_exceeds_limit_raises(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check("blocked@example.com")

        with pytest.raises(RateLimitedError):
            rate_limiter.check("blocked@example.com")

    def test_error_includes_retry_after(self, rate_limiter):
        """RateLimitedError includes positive retry_after_seconds."""
        for _ in range(3):
            rate_limiter.check("retry@example.com")

        with pytest.raises(RateLimitedError) as exc_info:
            rate_limiter.check("retry@example.com")

        assert exc_info.value.retry_after_seconds > 0

    def test_retry_after_is_accurate(self, rate_limiter, clock):
        """After waiting retry_after seconds, the next hit is admitted."""
        for _ in range(4):
            rate_limiter.hit("1.2.3.4")

        clock.advance(rate_limiter.retry_after("1.2.3.4"))

        assert rate_limiter.hit("1.2.3.4") is True


class TestReset:
    """Test forgetting a key."""

    def test_reset_clears_counter(self, rate_limiter):
        for _ in range(3):
            rate_limiter.hit("reset@example.com")

        rate_limiter.reset("RESET@example.com")

        assert rate_limiter.remaining("reset@example.com") == 3

    def test_reset_unknown_key_is_noop(self, rate_limiter):
        rate_limiter.reset("never-seen")


class TestCapacity:
    """Test bounded key tracking."""

    def test_oldest_key_forgotten_at_capacity(self, clock):
        limiter = DecayLimiter(threshold=1, half_life_seconds=600, capacity=2, clock=clock)
        limiter.hit("a")
        limiter.hit("b")
        limiter.hit("c")

        # "a" was evicted, so it starts from zero again
        assert limiter.hit("a") is True
