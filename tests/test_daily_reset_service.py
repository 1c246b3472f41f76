from datetime import date, datetime, timedelta

import pytest

from brainguard.exceptions import TransientStoreError
from brainguard.schemas.usage import UsageRecord
from brainguard.services.daily_reset_service import POST_RESET_CHECK_JOB_ID, RESET_JOB_ID, DailyResetService
from brainguard.services.daily_summary_service import DailySummaryService
from brainguard.utils.constants import (
    HOUR_MS,
    META_DAILY_RESET_COUNT,
    META_LAST_DAILY_RESET,
    META_LAST_RESET_ERROR,
)

INSTAGRAM = "com.instagram.android"


@pytest.fixture
def summaries(monitored, aggregator, clock):
    return DailySummaryService(monitored, aggregator, clock)


@pytest.fixture
def reset_service(monitored, engine, summaries, aggregator, clock, scheduler):
    return DailyResetService(monitored, engine, summaries, aggregator, clock, scheduler, post_reset_delay_seconds=5)


def test_first_run_records_baseline_and_arms_midnight(reset_service, store, scheduler, clock):
    reset_service.initialize()

    assert store.get_meta(META_LAST_DAILY_RESET) == clock.now().isoformat()
    assert store.get_meta_int(META_DAILY_RESET_COUNT, 0) == 0
    assert reset_service.timer.deadline == datetime(2026, 3, 11, 0, 0)
    assert scheduler.jobs[RESET_JOB_ID].kwargs["run_date"] == datetime(2026, 3, 11, 0, 0)
    assert reset_service.time_until_next_reset() == timedelta(hours=12)
    assert reset_service.is_reset_due() is False


def test_reset_fire_zeroes_trackers_and_rearms(reset_service, engine, collector, store, scheduler, clock):
    engine.initialize_trackers()
    reset_service.initialize()
    collector.set_usage(INSTAGRAM, 35)
    engine.check_usage_and_notify()
    assert engine.trackers[INSTAGRAM].notified_thresholds == {0}

    clock.set(datetime(2026, 3, 11, 0, 0))
    scheduler.fire(RESET_JOB_ID)

    for tracker in engine.trackers.values():
        assert tracker.total_today_ms == 0
        assert tracker.notified_thresholds == set()

    assert store.get_daily_summary(date(2026, 3, 10)).score == 93
    assert store.get_meta_int(META_DAILY_RESET_COUNT, 0) == 1
    assert store.get_meta(META_LAST_RESET_ERROR) == ""
    assert reset_service.timer.deadline == datetime(2026, 3, 12, 0, 0)
    assert scheduler.jobs[POST_RESET_CHECK_JOB_ID].kwargs["run_date"] == datetime(2026, 3, 11, 0, 0, 5)


def test_missed_reset_recovers_before_arming(reset_service, engine, store, scheduler, monkeypatch):
    store.set_meta(META_LAST_DAILY_RESET, "2026-03-07T00:00:00")
    for day in (8, 9):
        d = date(2026, 3, day)
        store.upsert_daily_usage(d, [UsageRecord(date=d, package_name=INSTAGRAM, app_name="Instagram", total_ms=HOUR_MS)])

    order = []
    original_reset = engine.reset_daily_tracking
    original_add_job = scheduler.add_job

    def recording_reset(force=False):
        order.append("reset")
        return original_reset(force=force)

    def recording_add_job(func, trigger, id=None, **kwargs):
        order.append(id)
        return original_add_job(func, trigger, id=id, **kwargs)

    monkeypatch.setattr(engine, "reset_daily_tracking", recording_reset)
    monkeypatch.setattr(scheduler, "add_job", recording_add_job)

    reset_service.initialize()

    assert order.index("reset") < order.index(RESET_JOB_ID)
    assert store.get_daily_summary(date(2026, 3, 8)) is not None
    assert store.get_daily_summary(date(2026, 3, 9)) is not None
    assert store.get_meta_int(META_DAILY_RESET_COUNT, 0) == 1
    assert POST_RESET_CHECK_JOB_ID not in scheduler.jobs
    assert reset_service.timer.deadline == datetime(2026, 3, 11, 0, 0)


def test_failing_step_does_not_block_the_rest(reset_service, summaries, engine, collector, store, clock, monkeypatch):
    engine.initialize_trackers()
    collector.set_usage(INSTAGRAM, 35)
    engine.check_usage_and_notify()

    def broken(*args, **kwargs):
        raise RuntimeError("summary table missing")

    monkeypatch.setattr(summaries, "commit_summary_for_date", broken)
    clock.set(datetime(2026, 3, 11, 0, 0))

    assert reset_service.perform_daily_reset() is True

    assert engine.trackers[INSTAGRAM].total_today_ms == 0
    assert "summary" in store.get_meta(META_LAST_RESET_ERROR)
    assert store.get_meta_int(META_DAILY_RESET_COUNT, 0) == 1


def test_manual_reset_forces_tracker_reset(reset_service, engine, collector):
    engine.initialize_trackers()
    collector.set_usage(INSTAGRAM, 35)
    engine.check_usage_and_notify()

    assert reset_service.trigger_manual_reset() is True
    assert engine.trackers[INSTAGRAM].total_today_ms == 0


def test_rearming_keeps_a_single_deadline(reset_service, scheduler):
    reset_service.initialize()
    reset_service.schedule_next_reset()
    reset_service.schedule_next_reset()

    assert [job_id for job_id in scheduler.jobs if job_id == RESET_JOB_ID] == [RESET_JOB_ID]


def test_reset_status_and_cleanup(reset_service, scheduler, clock):
    reset_service.initialize()
    status = reset_service.get_reset_status()

    assert status.is_initialized is True
    assert status.next_reset_scheduled is True
    assert status.next_reset_time == datetime(2026, 3, 11, 0, 0)
    assert status.last_reset_time == clock.now().isoformat()

    reset_service.cleanup()

    assert RESET_JOB_ID not in scheduler.jobs
    assert reset_service.get_reset_status().next_reset_scheduled is False


def test_locked_monitored_list_at_midnight_keeps_trackers(reset_service, engine, collector, store, scheduler, clock, monkeypatch):
    engine.initialize_trackers()
    reset_service.initialize()
    collector.set_usage(INSTAGRAM, 35)
    engine.check_usage_and_notify()
    tracked = set(engine.trackers)

    def locked(*args, **kwargs):
        raise TransientStoreError("database is locked")

    monkeypatch.setattr(store, "get_app_settings", locked)
    clock.set(datetime(2026, 3, 11, 0, 0))
    scheduler.fire(RESET_JOB_ID)
    monkeypatch.undo()

    assert set(engine.trackers) == tracked
    assert engine.trackers[INSTAGRAM].total_today_ms == 0
    # 목록을 모르는 상태로 0점짜리 요약을 만들지 않음
    assert store.get_daily_summary(date(2026, 3, 10)) is None
    assert "monitored apps" in store.get_meta(META_LAST_RESET_ERROR)
