import pytest

from brainguard.services.score import calculate_score, score_label, score_status
from brainguard.utils.constants import DEFAULT_ALLOWED_TIME_MS, HOUR_MS, MINUTE_MS


ALLOWED = 8 * HOUR_MS


def test_score_bounds():
    assert calculate_score(0, ALLOWED) == 100
    assert calculate_score(ALLOWED, ALLOWED) == 0
    assert calculate_score(2 * ALLOWED, ALLOWED) == 0
    assert calculate_score(-5, ALLOWED) == 100


def test_score_non_positive_allowance_is_zero():
    assert calculate_score(10 * MINUTE_MS, 0) == 0
    assert calculate_score(0, -1) == 0


def test_score_rounds_half_up():
    # 1h of 8h -> raw 87.5 -> 88
    assert calculate_score(ALLOWED // 8, ALLOWED) == 88
    # a quarter of the allowance -> 75
    assert calculate_score(ALLOWED // 4, ALLOWED) == 75


def test_score_never_increases_with_usage():
    previous = 101
    for minutes in range(0, 10 * 60, 7):
        score = calculate_score(minutes * MINUTE_MS, ALLOWED)
        assert score <= previous
        previous = score


def test_default_allowance_is_eight_hours():
    assert DEFAULT_ALLOWED_TIME_MS == 8 * HOUR_MS
    assert calculate_score(4 * HOUR_MS) == 50


@pytest.mark.parametrize("score,label,status", [
    (100, "Excellent", "healthy"),
    (85, "Good", "healthy"),
    (72, "Okay", "warning"),
    (55, "Warning", "warning"),
    (35, "Poor", "attention"),
    (20, "Bad", "critical"),
    (3, "Critical", "critical"),
])
def test_score_label_and_status(score, label, status):
    assert score_label(score) == label
    assert score_status(score) == status
