"""Retry bookkeeping and jittered linear backoff."""

from __future__ import annotations

import random
from dataclasses import dataclass

from brew_change.http.failure_classifier import FailureKind

MIN_DELAY_SECONDS = 1.0
SMALL_BASE_THRESHOLD_SECONDS = 4.0
JITTER_PERCENT = 25


@dataclass(slots=True)
class RetryState:
    """Attempt counter for one fetch call."""

    url: str
    max_attempts: int
    attempt: int = 0
    last_kind: FailureKind | None = None
    last_status: int | None = None

    def next_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    rng: random.Random | None = None,
) -> float:
    """Delay to wait after failed ``attempt`` (1-based) before the next one.

    The base grows linearly (``base_delay * attempt``). Small bases get a
    jitter of -1, 0 or +1 second, larger ones up to +/-25 percent truncated
    toward zero. The result never drops below one second; a non-positive
    ``base_delay`` disables waiting altogether.
    """

    if base_delay <= 0:
        return 0.0
    rng = rng or random.Random()
    base = base_delay * max(1, attempt)
    if base <= SMALL_BASE_THRESHOLD_SECONDS:
        jitter = float(rng.randint(-1, 1))
    else:
        percent = rng.randint(-JITTER_PERCENT, JITTER_PERCENT)
        jitter = float(int(base * percent / 100))
    return max(MIN_DELAY_SECONDS, base + jitter)
