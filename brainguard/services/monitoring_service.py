# brainguard/services/monitoring_service.py

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import timedelta
from enum import Enum
from threading import Lock, RLock
from typing import Dict, List, Optional, Sequence

from apscheduler.jobstores.base import JobLookupError

from brainguard.exceptions import CallTimedOut, CollectorUnavailable, TransientStoreError
from brainguard.ports.collector import UsageCollector
from brainguard.schemas.monitoring import MonitoringStatus, TrackerStatus
from brainguard.schemas.usage import CollectedUsage, ForegroundApp, UsageRecord, UsageSample
from brainguard.services.clock import now_ms, today
from brainguard.services.events import ForegroundAppDetected, ThresholdCrossed, UsageRecorded
from brainguard.services.monitored_apps import ensure_default_monitored_apps, resolve_monitored_packages
from brainguard.services.tracker import DEFAULT_THRESHOLDS, AppTracker, Threshold
from brainguard.utils.constants import (
    META_MONITORING_ENABLED,
    META_MONITORING_STARTED_AT,
    META_NOTIFICATIONS_ENABLED,
    META_SNOOZE_UNTIL,
    get_app_display_name,
)
from brainguard.utils.time import format_duration, start_of_day, to_epoch_ms

logger = logging.getLogger(__name__)

BACKGROUND_JOB_ID = "usage-background-check"
INITIAL_CHECK_JOB_ID = "usage-initial-check"
REALTIME_CHECK_JOB_ID = "usage-realtime-check"


class MonitoringState(str, Enum):
    STOPPED = "stopped"
    POLLING_BACKGROUND = "polling_background"
    POLLING_REALTIME = "polling_background_realtime"


class MonitoringEngine:
    """Owns the AppTracker map and the serialized usage-check tick.

    Ticks come from the background interval job, the realtime foreground
    signal and manual checks. All of them go through check_usage_and_notify,
    which lets exactly one tick run at a time; a trigger that arrives while a
    tick is running is coalesced into one follow-up tick.
    """

    def __init__(
        self,
        store,
        collector: UsageCollector,
        dispatcher,
        bus,
        clock,
        scheduler,
        thresholds: Sequence[Threshold] = DEFAULT_THRESHOLDS,
        poll_interval_seconds: int = 600,
        initial_check_delay_seconds: int = 5,
        call_timeout_seconds: float = 10.0,
    ):
        self.store = store
        self.collector = collector
        self.dispatcher = dispatcher
        self.bus = bus
        self.clock = clock
        self.scheduler = scheduler
        self.thresholds = tuple(sorted(thresholds, key=lambda t: t.duration_ms))
        self.poll_interval_seconds = poll_interval_seconds
        self.initial_check_delay_seconds = initial_check_delay_seconds
        self.call_timeout_seconds = call_timeout_seconds

        self.state = MonitoringState.STOPPED
        self.check_count = 0
        self._trackers: Dict[str, AppTracker] = {}
        self._tracking_date = None

        self._sync_pending = False

        self._tick_lock = Lock()
        self._state_lock = RLock()
        self._rerun_lock = Lock()
        self._rerun_requested = False
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="brainguard-io")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_monitoring(self) -> bool:
        return self.state != MonitoringState.STOPPED

    def initialize(self) -> None:
        try:
            ensure_default_monitored_apps(self.store)
        except TransientStoreError as e:
            logger.warning(f"Could not seed default monitored apps: {e}")

        self.initialize_trackers()

        try:
            enabled = self.store.get_meta(META_MONITORING_ENABLED)
        except TransientStoreError as e:
            logger.warning(f"Could not read monitoring flag: {e}")
            return

        if enabled == "true":
            self.start()

    def start(self) -> bool:
        with self._state_lock:
            if self.is_monitoring:
                logger.debug("Monitoring already active")
                return True

            try:
                granted = self._call(self.collector.permission_granted)
            except CollectorUnavailable as e:
                logger.error(f"Usage access check failed: {e}")
                return False
            if not granted:
                logger.error("Usage access not granted, cannot start monitoring")
                return False

            self.scheduler.add_job(
                self.check_usage_and_notify,
                "interval",
                seconds=self.poll_interval_seconds,
                id=BACKGROUND_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self.state = MonitoringState.POLLING_BACKGROUND

            try:
                if self.collector.start_realtime(self._on_foreground_signal):
                    self.state = MonitoringState.POLLING_REALTIME
            except Exception:
                logger.exception("Realtime foreground detection unavailable")

            try:
                self.store.set_meta(META_MONITORING_ENABLED, "true")
                self.store.set_meta(META_MONITORING_STARTED_AT, str(now_ms(self.clock)))
            except TransientStoreError as e:
                logger.warning(f"Could not persist monitoring flag: {e}")

            self.scheduler.add_job(
                self.check_usage_and_notify,
                "date",
                run_date=self.clock.now() + timedelta(seconds=self.initial_check_delay_seconds),
                id=INITIAL_CHECK_JOB_ID,
                replace_existing=True,
            )
            logger.info(f"Monitoring started ({self.state.value}), every {self.poll_interval_seconds}s")
            return True

    def stop(self, persist: bool = True) -> None:
        """Stop scheduling ticks. A tick already running is allowed to finish."""
        with self._state_lock:
            if not self.is_monitoring:
                return

            for job_id in (BACKGROUND_JOB_ID, INITIAL_CHECK_JOB_ID, REALTIME_CHECK_JOB_ID):
                try:
                    self.scheduler.remove_job(job_id)
                except JobLookupError:
                    pass

            if self.state == MonitoringState.POLLING_REALTIME:
                try:
                    self.collector.stop_realtime()
                except Exception:
                    logger.exception("Error stopping realtime detection")

            self.state = MonitoringState.STOPPED

            if persist:
                try:
                    self.store.set_meta(META_MONITORING_ENABLED, "false")
                except TransientStoreError as e:
                    logger.warning(f"Could not persist monitoring flag: {e}")

            logger.info("Usage monitoring stopped")

    def shutdown(self) -> None:
        self.stop(persist=False)
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Trackers
    # ------------------------------------------------------------------
    def initialize_trackers(self) -> None:
        with self._tick_lock:
            self._tracking_date = today(self.clock)
            self._sync_trackers_locked(rebuild=True)

    def refresh_monitored_apps(self) -> bool:
        with self._tick_lock:
            return self._sync_trackers_locked()

    def _sync_trackers_locked(self, rebuild: bool = False) -> bool:
        try:
            monitored = self._call(resolve_monitored_packages, self.store, True)
        except (TransientStoreError, CollectorUnavailable) as e:
            # 목록을 못 읽으면 기존 트래커(알림 이력 포함) 유지, 다음 tick에서 재시도
            self._sync_pending = True
            logger.warning(f"Could not load monitored apps, keeping {len(self._trackers)} trackers: {e}")
            return False

        self._sync_pending = False
        if rebuild:
            self._trackers.clear()

        for package_name in list(self._trackers):
            if package_name not in monitored:
                del self._trackers[package_name]
                logger.info(f"Removed tracker for {package_name}")

        missing = monitored - set(self._trackers)
        if not missing:
            return True

        # 새 트래커는 현재 누적값으로 시작 (등록 즉시 알림이 터지지 않도록)
        current = self._fetch_today_usage(quiet=True)
        now = now_ms(self.clock)
        for package_name in sorted(missing):
            usage = current.get(package_name)
            app_name = (usage.app_name if usage else None) or get_app_display_name(package_name)
            self._trackers[package_name] = AppTracker(
                package_name=package_name,
                app_name=app_name,
                total_today_ms=usage.total_foreground_ms if usage else 0,
                last_checked_at=now,
            )
            logger.info(f"Tracking {app_name} from {format_duration(self._trackers[package_name].total_today_ms)}")
        return True

    def reset_daily_tracking(self, force: bool = False) -> bool:
        """Zero every tracker for the new day. Idempotent per calendar date."""
        with self._tick_lock:
            return self._reset_trackers_locked(force=force)

    def _reset_trackers_locked(self, force: bool = False) -> bool:
        current_date = today(self.clock)
        if not force and self._tracking_date == current_date:
            return False

        now = now_ms(self.clock)
        for tracker in self._trackers.values():
            tracker.reset(now)
        self._tracking_date = current_date
        logger.info(f"Daily tracking reset for {current_date} ({len(self._trackers)} trackers)")
        return True

    @property
    def trackers(self) -> Dict[str, AppTracker]:
        return dict(self._trackers)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def check_usage_and_notify(self) -> int:
        """Run one serialized tick. Never raises; returns alerts dispatched."""
        # tick 잠금 획득/해제와 재실행 플래그는 _rerun_lock 안에서만 함께 바뀜
        with self._rerun_lock:
            if not self._tick_lock.acquire(blocking=False):
                self._rerun_requested = True
                logger.debug("Tick already running, coalescing trigger")
                return 0
            self._rerun_requested = False

        sent = 0
        released = False
        try:
            sent = self._guarded_tick()
            while True:
                with self._rerun_lock:
                    if not (self._rerun_requested and self.is_monitoring):
                        self._rerun_requested = False
                        self._tick_lock.release()
                        released = True
                        return sent
                    self._rerun_requested = False
                # 실행 중에 들어온 트리거는 한 번만 더 처리
                sent += self._guarded_tick()
        finally:
            if not released:
                self._tick_lock.release()

    def trigger_manual_check(self) -> int:
        logger.info("Manual usage check triggered")
        return self.check_usage_and_notify()

    def _guarded_tick(self) -> int:
        try:
            return self._run_tick()
        except Exception:
            logger.exception("Usage check failed, treating as a no-op tick")
            return 0

    def _run_tick(self) -> int:
        self.check_count += 1
        current_date = today(self.clock)
        now = now_ms(self.clock)

        if self._tracking_date is not None and self._tracking_date != current_date:
            # 자정 리셋 타이머보다 먼저 새 날짜 tick이 온 경우
            logger.warning(f"Day rolled over to {current_date} before the daily reset fired")
            self._reset_trackers_locked()

        if self._sync_pending:
            self._sync_trackers_locked()

        if self._alerts_suppressed(now):
            return 0

        foreground = self._detect_foreground()

        usage = self._fetch_today_usage()
        if not usage:
            logger.info(f"Usage check #{self.check_count}: no usage data, skipping")
            return 0

        self._record_usage(current_date, usage)

        ordered = list(self._trackers.values())
        if foreground is not None and foreground.package_name in self._trackers:
            # 현재 화면에 떠 있는 앱을 먼저 확인
            ordered.sort(key=lambda t: t.package_name != foreground.package_name)

        sent = 0
        for tracker in ordered:
            try:
                if self._check_tracker(tracker, usage.get(tracker.package_name), now, current_date):
                    sent += 1
            except Exception:
                logger.exception(f"Error checking usage for {tracker.package_name}")

        logger.info(f"Usage check #{self.check_count}: {len(usage)} apps, {sent} notifications")
        return sent

    def _alerts_suppressed(self, now: int) -> bool:
        try:
            enabled = self._call(self.store.get_meta, META_NOTIFICATIONS_ENABLED)
            snooze_until = self._call(self.store.get_meta_int, META_SNOOZE_UNTIL, 0)
        except (TransientStoreError, CollectorUnavailable) as e:
            logger.warning(f"Could not read notification settings, skipping tick: {e}")
            return True

        if enabled == "false":
            logger.info("Notifications disabled, skipping check")
            return True
        if now < snooze_until:
            logger.info("Notifications snoozed, skipping check")
            return True
        return False

    def _detect_foreground(self) -> Optional[ForegroundApp]:
        try:
            foreground = self._call(self.collector.current_foreground_app)
        except CollectorUnavailable as e:
            logger.debug(f"Foreground app unavailable: {e}")
            return None
        if foreground is None:
            return None

        monitored = foreground.package_name in self._trackers
        app_name = foreground.app_name or get_app_display_name(foreground.package_name)
        self.bus.publish(ForegroundAppDetected(
            package_name=foreground.package_name,
            app_name=app_name,
            monitored=monitored,
        ))
        return foreground

    def _fetch_today_usage(self, quiet: bool = False) -> Dict[str, CollectedUsage]:
        since = to_epoch_ms(start_of_day(self.clock.now()))
        try:
            rows: List[CollectedUsage] = self._call(self.collector.usage_since, since) or []
        except CollectorUnavailable as e:
            if not quiet:
                logger.warning(f"Collector unavailable: {e}")
            return {}

        by_package: Dict[str, CollectedUsage] = {}
        for row in rows:
            current = by_package.get(row.package_name)
            if current is None or row.total_foreground_ms > current.total_foreground_ms:
                by_package[row.package_name] = row
        return by_package

    def _record_usage(self, current_date, usage: Dict[str, CollectedUsage]) -> None:
        records = [
            UsageRecord(
                date=current_date,
                package_name=row.package_name,
                app_name=row.app_name or get_app_display_name(row.package_name),
                total_ms=row.total_foreground_ms,
            )
            for row in usage.values()
        ]
        try:
            changed = self._call(self.store.upsert_daily_usage, current_date, records)
        except (TransientStoreError, CollectorUnavailable) as e:
            logger.warning(f"Could not persist raw usage for {current_date}: {e}")
            return
        if changed:
            self.bus.publish(UsageRecorded(usage_date=current_date))

    def _check_tracker(self, tracker: AppTracker, usage: Optional[CollectedUsage], now: int, current_date) -> bool:
        if usage is None:
            return False

        previous = tracker.total_today_ms
        delta = tracker.update(UsageSample(
            package_name=tracker.package_name,
            app_name=tracker.app_name,
            total_foreground_ms=usage.total_foreground_ms,
            as_of=now,
        ))
        if delta <= 0:
            return False

        logger.debug(f"{tracker.app_name}: {format_duration(previous)} -> {format_duration(tracker.total_today_ms)}")

        crossed = tracker.thresholds_crossed(self.thresholds)
        if not crossed:
            return False

        # 앱당 tick 한 번에 알림 최대 1개 (가장 낮은 임계값부터)
        index, threshold = crossed[0]
        usage_time = format_duration(tracker.total_today_ms)
        try:
            dispatched = self._call(self.dispatcher.try_send, tracker.app_name, threshold.intensity, usage_time)
        except CallTimedOut as e:
            # 전송이 아직 진행 중일 수 있으므로 같은 임계값을 다시 보내지 않음
            logger.warning(f"Notification for {tracker.app_name} did not finish in time: {e}")
            dispatched = False
        tracker.mark_notified(index)

        try:
            self._call(
                self.store.save_notification_history,
                tracker.package_name, threshold.intensity.value, now, current_date,
            )
        except (TransientStoreError, CollectorUnavailable) as e:
            logger.warning(f"Could not save notification history for {tracker.package_name}: {e}")

        self.bus.publish(ThresholdCrossed(
            package_name=tracker.package_name,
            app_name=tracker.app_name,
            intensity=threshold.intensity,
            threshold_index=index,
            total_today_ms=tracker.total_today_ms,
        ))

        if dispatched:
            logger.info(f"Sent {threshold.intensity.value} notification for {tracker.app_name} after {usage_time}")
        return dispatched

    def _on_foreground_signal(self, app: ForegroundApp) -> None:
        if not self.is_monitoring:
            return
        # 신호가 몰려도 job id 하나로 합쳐짐
        self.scheduler.add_job(
            self.check_usage_and_notify,
            "date",
            run_date=self.clock.now(),
            id=REALTIME_CHECK_JOB_ID,
            replace_existing=True,
        )

    def _call(self, fn, *args):
        """Run one external call with a bounded wait."""
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.call_timeout_seconds)
        except FutureTimeout as e:
            raise CallTimedOut(f"{getattr(fn, '__name__', fn)} timed out") from e
        except (TransientStoreError, CollectorUnavailable):
            raise
        except Exception as e:
            raise CollectorUnavailable(str(e)) from e

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_monitoring_status(self) -> MonitoringStatus:
        trackers = list(self._trackers.values())
        return MonitoringStatus(
            state=self.state.value,
            is_monitoring=self.is_monitoring,
            tracked_apps=len(trackers),
            background_enabled=self.is_monitoring,
            realtime_enabled=self.state == MonitoringState.POLLING_REALTIME,
            check_count=self.check_count,
            tracking_date=self._tracking_date,
            tracking_details=[
                TrackerStatus(
                    package_name=t.package_name,
                    app_name=t.app_name,
                    today_usage_ms=t.total_today_ms,
                    notification_count=len(t.notified_thresholds),
                )
                for t in trackers
            ],
        )
