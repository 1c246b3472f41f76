# brainguard/services/daily_reset_service.py

import logging
from datetime import date, datetime, timedelta
from threading import Lock
from typing import Optional

from apscheduler.jobstores.base import JobLookupError

from brainguard.exceptions import TransientStoreError
from brainguard.schemas.monitoring import ResetStatus
from brainguard.services.clock import DeadlineTimer, today
from brainguard.utils.constants import (
    META_DAILY_RESET_COUNT,
    META_LAST_DAILY_RESET,
    META_LAST_RESET_DURATION_MS,
    META_LAST_RESET_ERROR,
)
from brainguard.utils.time import next_midnight, to_epoch_ms

logger = logging.getLogger(__name__)

RESET_JOB_ID = "daily-reset"
POST_RESET_CHECK_JOB_ID = "post-reset-check"


class DailyResetService:
    """Midnight reset loop: Scheduled -> Firing -> Scheduled.

    Every fire commits the closed day(s), zeroes the trackers, evicts cached
    scores, records bookkeeping and re-arms for the next local midnight.
    Each step is independent; a failing step is logged and the rest still run.
    """

    def __init__(
        self,
        store,
        engine,
        summary_service,
        aggregator,
        clock,
        scheduler,
        post_reset_delay_seconds: int = 5,
        retention_days: int = 30,
        max_recovery_days: int = 30,
    ):
        self.store = store
        self.engine = engine
        self.summary_service = summary_service
        self.aggregator = aggregator
        self.clock = clock
        self.scheduler = scheduler
        self.post_reset_delay_seconds = post_reset_delay_seconds
        self.retention_days = retention_days
        self.max_recovery_days = max_recovery_days

        self.timer = DeadlineTimer(scheduler, RESET_JOB_ID)
        self.is_initialized = False
        self._reset_lock = Lock()

    def initialize(self) -> None:
        if self.is_initialized:
            return

        last_reset = self._last_reset_time()
        if last_reset is None:
            # 첫 실행: 기준 시각만 기록하고 카운트는 올리지 않음
            logger.info("[RESET] First run, recording reset baseline")
            self._set_meta(META_LAST_DAILY_RESET, self.clock.now().isoformat())
        elif last_reset.date() < today(self.clock):
            logger.info(f"[RESET] Missed daily reset (last: {last_reset.isoformat()}), recovering")
            self.perform_daily_reset(followup_tick=False)

        self.schedule_next_reset()
        self.is_initialized = True
        logger.info(f"[RESET] Initialized, next reset at {self.timer.deadline}")

    def schedule_next_reset(self) -> datetime:
        run_at = next_midnight(self.clock.now())
        self.timer.arm(run_at, self._on_deadline)
        return run_at

    def _on_deadline(self) -> None:
        self.timer.fired()
        self.perform_daily_reset()

    def perform_daily_reset(self, followup_tick: bool = True, force_tracker_reset: bool = False) -> bool:
        if not self._reset_lock.acquire(blocking=False):
            logger.warning("[RESET] Reset already in progress")
            return False

        started = self.clock.now()
        errors = []
        try:
            current = started.date()
            yesterday = current - timedelta(days=1)

            # (a) 끝난 날짜(들) summary 저장
            try:
                self._commit_closed_days(yesterday)
            except Exception as e:
                logger.exception("[RESET] Summary commit failed")
                errors.append(f"summary: {e}")

            # (b) 트래커 초기화
            try:
                self.engine.reset_daily_tracking(force=force_tracker_reset)
            except Exception as e:
                logger.exception("[RESET] Tracker reset failed")
                errors.append(f"trackers: {e}")

            # (c) 캐시 무효화
            self.aggregator.invalidate(yesterday)
            self.aggregator.invalidate(current)

            # (d) 오래된 알림 기록 정리 + 모니터링 목록 재동기화
            try:
                cutoff = current - timedelta(days=self.retention_days)
                removed = self.store.delete_notification_history_before(cutoff)
                if removed:
                    logger.info(f"[RESET] Removed {removed} notification records before {cutoff}")
                if not self.engine.refresh_monitored_apps():
                    errors.append("cleanup: monitored apps unavailable, trackers kept")
            except Exception as e:
                logger.exception("[RESET] Cleanup failed")
                errors.append(f"cleanup: {e}")

            # (e) 기록
            duration_ms = to_epoch_ms(self.clock.now()) - to_epoch_ms(started)
            try:
                count = self.store.get_meta_int(META_DAILY_RESET_COUNT, 0)
                self.store.set_meta(META_LAST_DAILY_RESET, started.isoformat())
                self.store.set_meta(META_LAST_RESET_DURATION_MS, str(duration_ms))
                self.store.set_meta(META_DAILY_RESET_COUNT, str(count + 1))
                self.store.set_meta(META_LAST_RESET_ERROR, "; ".join(errors))
            except TransientStoreError as e:
                logger.error(f"[RESET] Could not record reset bookkeeping: {e}")

            logger.info(f"[RESET] Daily reset done in {duration_ms}ms ({len(errors)} step errors)")
        finally:
            self._reset_lock.release()

        # (f) 다음 자정 예약
        self.schedule_next_reset()

        # (g) 새 날짜 트래커 재시드용 tick
        if followup_tick:
            self.scheduler.add_job(
                self.engine.check_usage_and_notify,
                "date",
                run_date=self.clock.now() + timedelta(seconds=self.post_reset_delay_seconds),
                id=POST_RESET_CHECK_JOB_ID,
                replace_existing=True,
            )
        return True

    def trigger_manual_reset(self) -> bool:
        logger.info("[RESET] Manual reset triggered")
        return self.perform_daily_reset(force_tracker_reset=True)

    def _commit_closed_days(self, yesterday: date) -> None:
        last_reset = self._last_reset_time()
        first = min(last_reset.date(), yesterday) if last_reset is not None else yesterday
        first = max(first, yesterday - timedelta(days=self.max_recovery_days - 1))

        d = first
        while d <= yesterday:
            try:
                self.summary_service.commit_summary_for_date(d)
            except TransientStoreError as e:
                logger.error(f"[RESET] Could not commit summary for {d}: {e}")
            d += timedelta(days=1)

    def _last_reset_time(self) -> Optional[datetime]:
        try:
            raw = self.store.get_meta(META_LAST_DAILY_RESET)
        except TransientStoreError as e:
            logger.warning(f"[RESET] Could not read last reset time: {e}")
            return None
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(f"[RESET] Unparsable last reset time {raw!r}")
            return None

    def _set_meta(self, key: str, value: str) -> None:
        try:
            self.store.set_meta(key, value)
        except TransientStoreError as e:
            logger.warning(f"[RESET] Could not write {key}: {e}")

    def is_reset_due(self) -> bool:
        last_reset = self._last_reset_time()
        return last_reset is None or last_reset.date() < today(self.clock)

    def time_until_next_reset(self) -> Optional[timedelta]:
        if self.timer.deadline is None:
            return None
        return max(timedelta(0), self.timer.deadline - self.clock.now())

    def get_reset_status(self) -> ResetStatus:
        last_reset = self._last_reset_time()
        try:
            count = self.store.get_meta_int(META_DAILY_RESET_COUNT, 0)
        except TransientStoreError:
            count = 0
        return ResetStatus(
            is_initialized=self.is_initialized,
            next_reset_scheduled=self.timer.pending,
            next_reset_time=self.timer.deadline,
            last_reset_time=last_reset.isoformat() if last_reset else None,
            reset_count=count,
        )

    def cleanup(self) -> None:
        self.timer.cancel()
        try:
            self.scheduler.remove_job(POST_RESET_CHECK_JOB_ID)
        except JobLookupError:
            pass
        self.is_initialized = False
        logger.info("[RESET] Daily reset service stopped")
