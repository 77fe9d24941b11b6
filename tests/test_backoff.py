"""
Unit tests for exponential backoff with additive jitter.

Tests verify:
- delay(0) < delay(1) < ... while below the cap
- Delay never exceeds the cap
- Repeated calls at one attempt vary only within the 0-30% jitter band
- Rate-limited retries wait retry_after instead of backing off
"""
import random
from datetime import datetime, timedelta, timezone

from app.services.backoff import calculate_backoff, next_attempt_at
from app.services.errors import ClassifiedError, ErrorType


class FixedRandom:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class TestCalculateBackoff:
    """Tests for calculate_backoff()"""

    def test_without_jitter_doubles_each_attempt(self):
        rng = FixedRandom(0.0)
        delays = [calculate_backoff(n, base=1.0, cap=300.0, rng=rng) for n in range(5)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_strictly_increasing_below_cap_even_with_max_jitter(self):
        """Worst case: low jitter on attempt n+1, full jitter on attempt n."""
        for n in range(7):
            high = calculate_backoff(n, base=1.0, cap=300.0, rng=FixedRandom(0.999))
            low_next = calculate_backoff(n + 1, base=1.0, cap=300.0, rng=FixedRandom(0.0))
            assert high < low_next

    def test_never_exceeds_cap(self):
        rng = random.Random(7)
        for attempt in range(0, 200, 3):
            assert calculate_backoff(attempt, base=1.0, cap=300.0, rng=rng) <= 300.0

    def test_huge_attempt_numbers_do_not_overflow(self):
        assert calculate_backoff(10_000, base=1.0, cap=300.0) <= 300.0

    def test_jitter_band_is_zero_to_thirty_percent(self):
        rng = random.Random(42)
        samples = [calculate_backoff(3, base=1.0, cap=300.0, rng=rng) for _ in range(200)]
        assert all(8.0 <= s <= 8.0 * 1.3 for s in samples)
        assert len(set(samples)) > 1

    def test_negative_attempt_treated_as_zero(self):
        assert calculate_backoff(-3, base=2.0, cap=60.0, rng=FixedRandom(0.0)) == 2.0

    def test_defaults_come_from_settings(self):
        delay = calculate_backoff(0, rng=FixedRandom(0.0))
        assert delay == 1.0


class TestNextAttemptAt:
    """Tests for next_attempt_at()"""

    def test_rate_limit_waits_retry_after(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        error = ClassifiedError(ErrorType.RATE_LIMIT, "slow down", retry_after=60.0)
        assert next_attempt_at(error, attempt=2, now=now) == now + timedelta(seconds=60)

    def test_retryable_uses_backoff(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        error = ClassifiedError(ErrorType.RETRYABLE, "503")
        when = next_attempt_at(error, attempt=1, now=now, rng=FixedRandom(0.0))
        assert when == now + timedelta(seconds=2)
