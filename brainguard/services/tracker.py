# brainguard/services/tracker.py

from dataclasses import dataclass
from typing import List, Sequence, Set, Tuple

from brainguard.schemas.usage import UsageSample
from brainguard.utils.constants import Intensity, USAGE_THRESHOLDS


@dataclass(frozen=True)
class Threshold:
    duration_ms: int
    intensity: Intensity


DEFAULT_THRESHOLDS: Tuple[Threshold, ...] = tuple(
    Threshold(duration_ms=duration, intensity=intensity)
    for duration, intensity in USAGE_THRESHOLDS
)


class AppTracker:
    """Today's accumulated foreground time for one monitored app.

    total_today_ms only grows between resets, and so does notified_thresholds.
    """

    def __init__(self, package_name: str, app_name: str, total_today_ms: int = 0, last_checked_at: int = 0):
        self.package_name = package_name
        self.app_name = app_name
        self.total_today_ms = max(0, total_today_ms)
        self.last_checked_at = last_checked_at
        self.notified_thresholds: Set[int] = set()

    def update(self, sample: UsageSample) -> int:
        # 이전 값보다 큰 샘플만 반영 (늦게 도착한 샘플/순서 뒤바뀜 방지)
        if sample.total_foreground_ms <= self.total_today_ms:
            return 0

        delta = sample.total_foreground_ms - self.total_today_ms
        self.total_today_ms = sample.total_foreground_ms
        self.last_checked_at = sample.as_of
        return delta

    def thresholds_crossed(self, thresholds: Sequence[Threshold] = DEFAULT_THRESHOLDS) -> List[Tuple[int, Threshold]]:
        """Crossed but not yet notified thresholds, ascending by duration."""
        ordered = sorted(enumerate(thresholds), key=lambda item: item[1].duration_ms)
        return [
            (index, threshold)
            for index, threshold in ordered
            if self.total_today_ms >= threshold.duration_ms and index not in self.notified_thresholds
        ]

    def mark_notified(self, index: int) -> None:
        self.notified_thresholds.add(index)

    def reset(self, now_ms: int = 0) -> None:
        self.total_today_ms = 0
        self.notified_thresholds.clear()
        self.last_checked_at = now_ms

    def __repr__(self):
        return (
            f"AppTracker({self.package_name!r}, total_today_ms={self.total_today_ms}, "
            f"notified={sorted(self.notified_thresholds)})"
        )
