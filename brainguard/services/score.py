# brainguard/services/score.py

import math

from brainguard.utils.constants import DEFAULT_ALLOWED_TIME_MS


def calculate_score(usage_ms: int, allowed_ms: int = DEFAULT_ALLOWED_TIME_MS) -> int:
    """Map accumulated usage to a 0-100 attention score.

    More usage never increases the score. Half points round up, so 1/200 of
    the allowance still reads as 100.
    """
    if usage_ms < 0:
        return 100
    if allowed_ms <= 0:
        return 0

    raw = 100 - (usage_ms / allowed_ms) * 100
    return max(0, min(100, math.floor(raw + 0.5)))


def score_label(score: int) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 80:
        return "Good"
    if score >= 70:
        return "Okay"
    if score >= 50:
        return "Warning"
    if score >= 30:
        return "Poor"
    if score >= 15:
        return "Bad"
    return "Critical"


def score_status(score: int) -> str:
    # healthy / warning / attention / critical
    if score >= 80:
        return "healthy"
    if score >= 50:
        return "warning"
    if score >= 25:
        return "attention"
    return "critical"
