from __future__ import annotations

import random

import allure
import pytest

from brew_change.http.backoff import RetryState, compute_backoff_delay
from brew_change.http.failure_classifier import FailureKind

pytestmark = [
    allure.epic("HTTP"),
    allure.feature("Retries & Backoff"),
]


class _FixedRandom:
    def __init__(self, value: int) -> None:
        self.value = value
        self.calls: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return self.value


def test_small_base_uses_one_second_jitter() -> None:
    rng = _FixedRandom(1)

    assert compute_backoff_delay(1, 2.0, rng) == 3.0
    assert rng.calls == [(-1, 1)]


def test_delay_never_drops_below_one_second() -> None:
    assert compute_backoff_delay(1, 1.0, _FixedRandom(-1)) == 1.0


def test_large_base_uses_percentage_jitter_truncated_toward_zero() -> None:
    rng = _FixedRandom(-25)

    # base 2 * 3 = 6, -25 % of 6 = -1.5 -> -1
    assert compute_backoff_delay(3, 2.0, rng) == 5.0
    assert rng.calls == [(-25, 25)]
    assert compute_backoff_delay(3, 2.0, _FixedRandom(25)) == 7.0


def test_delay_grows_linearly_with_attempt() -> None:
    delays = [compute_backoff_delay(attempt, 10.0, _FixedRandom(0)) for attempt in (1, 2, 3)]

    assert delays == [10.0, 20.0, 30.0]


@pytest.mark.parametrize("attempt", [1, 2, 3, 4])
def test_random_jitter_stays_within_bounds(attempt: int) -> None:
    rng = random.Random(attempt)
    base = 2.0 * attempt
    for _ in range(50):
        delay = compute_backoff_delay(attempt, 2.0, rng)
        assert delay >= 1.0
        if base <= 4:
            assert base - 1 <= delay <= base + 1
        else:
            assert base * 0.75 - 1 <= delay <= base * 1.25


def test_non_positive_base_disables_waiting() -> None:
    assert compute_backoff_delay(2, 0.0) == 0.0


def test_retry_state_counts_attempts() -> None:
    state = RetryState(url="https://api.github.com/", max_attempts=2)

    assert not state.exhausted
    assert state.next_attempt() == 1
    state.last_kind = FailureKind.TIMEOUT
    assert state.next_attempt() == 2
    assert state.exhausted
