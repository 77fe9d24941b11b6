"""
Backoff Policy - exponential delay with additive jitter
"""
from datetime import datetime, timedelta
from typing import Optional
import random

from app.core.config import settings
from app.services.errors import ClassifiedError, ErrorType


def calculate_backoff(
    attempt: int,
    base: float = None,
    cap: float = None,
    jitter_ratio: float = 0.3,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Delay in seconds before retry number `attempt` (zero-based).

    delay = min(base * 2^attempt, cap) plus a random 0-30% of that delay,
    clamped so the result never exceeds cap.
    """
    if base is None:
        base = settings.BACKOFF_BASE_SECONDS
    if cap is None:
        cap = settings.BACKOFF_CAP_SECONDS
    rng = rng or random

    attempt = max(0, attempt)
    # Avoid float overflow for huge attempt numbers
    exponent = min(attempt, 62)
    delay = min(base * (2 ** exponent), cap)
    jitter = rng.random() * jitter_ratio * delay
    return min(delay + jitter, cap)


def next_attempt_at(
    classified: ClassifiedError,
    attempt: int,
    now: datetime,
    rng: Optional[random.Random] = None,
) -> datetime:
    """When a requeued item becomes claimable again"""
    if classified.type == ErrorType.RATE_LIMIT and classified.retry_after is not None:
        return now + timedelta(seconds=classified.retry_after)
    return now + timedelta(seconds=calculate_backoff(attempt, rng=rng))
