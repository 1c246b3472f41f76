# brainguard/services/score_service.py

import logging
from datetime import date, datetime
from threading import RLock
from typing import Dict, Optional, Tuple

from brainguard.exceptions import TransientStoreError
from brainguard.schemas.daily_summary import AppUsageSnapshot, ScoreResult
from brainguard.services.clock import today
from brainguard.services.dedup import canonicalize
from brainguard.services.events import UsageRecorded
from brainguard.services.monitored_apps import resolve_monitored_packages
from brainguard.services.score import calculate_score
from brainguard.utils.constants import DEFAULT_ALLOWED_TIME_MS, META_ALLOWED_TIME_MS

logger = logging.getLogger(__name__)


class ScoreAggregator:
    """Resolves the score for a date: cache, then stored summary, then raw usage.

    Cache entries live for ``ttl_seconds`` and must be invalidated after any
    write to the raw usage or summary of their date. The raw path never
    persists anything; committing a closed day is the summary service's job.
    """

    def __init__(self, store, clock, host_package: str, ttl_seconds: float = 60.0, bus=None):
        self.store = store
        self.clock = clock
        self.host_package = host_package
        self.ttl_seconds = ttl_seconds
        self._cache: Dict[date, Tuple[ScoreResult, datetime]] = {}
        self._lock = RLock()

        if bus is not None:
            bus.subscribe(UsageRecorded, lambda event: self.invalidate(event.usage_date))

    def get_score_for_date(self, target_date: date) -> ScoreResult:
        cached = self._cached(target_date, fresh_only=True)
        if cached is not None:
            return cached

        try:
            summary = self.store.get_daily_summary(target_date)
            if summary is not None:
                result = ScoreResult(
                    total_usage_ms=summary.total_screen_time_ms,
                    score=summary.score,
                    apps=summary.apps,
                )
            else:
                result = self.compute_from_raw_usage(target_date)
        except TransientStoreError:
            stale = self._cached(target_date, fresh_only=False)
            if stale is not None:
                logger.warning(f"Store unavailable, serving stale score for {target_date}")
                return stale
            raise

        with self._lock:
            self._cache[target_date] = (result, self.clock.now())
        return result

    def get_today_score(self) -> ScoreResult:
        return self.get_score_for_date(today(self.clock))

    def compute_from_raw_usage(self, target_date: date) -> ScoreResult:
        raw_rows = self.store.get_daily_usage(target_date)

        # 현재 모니터링 목록 기준 (과거 날짜도 동일 - 알려진 한계)
        monitored = resolve_monitored_packages(self.store, strict=True)
        monitored.discard(self.host_package)

        filtered = [row for row in raw_rows if row.package_name in monitored]
        deduped = canonicalize(filtered)

        total_usage_ms = sum(row.total_ms for row in deduped)
        score = calculate_score(total_usage_ms, self.allowed_time_ms())

        apps = [
            AppUsageSnapshot(
                package_name=row.package_name,
                app_name=row.app_name,
                total_time_ms=row.total_ms,
            )
            for row in sorted(deduped, key=lambda r: (-r.total_ms, r.package_name))
        ]
        return ScoreResult(total_usage_ms=total_usage_ms, score=score, apps=apps)

    def allowed_time_ms(self) -> int:
        try:
            return self.store.get_meta_int(META_ALLOWED_TIME_MS, DEFAULT_ALLOWED_TIME_MS)
        except TransientStoreError:
            return DEFAULT_ALLOWED_TIME_MS

    def invalidate(self, target_date: Optional[date] = None) -> None:
        """Evict one date, or the whole cache when no date is given."""
        with self._lock:
            if target_date is None:
                self._cache.clear()
            else:
                self._cache.pop(target_date, None)

    def _cached(self, target_date: date, fresh_only: bool) -> Optional[ScoreResult]:
        with self._lock:
            entry = self._cache.get(target_date)
        if entry is None:
            return None

        result, stored_at = entry
        age = (self.clock.now() - stored_at).total_seconds()
        if fresh_only and not (0 <= age < self.ttl_seconds):
            return None
        return result
