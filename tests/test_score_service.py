from datetime import date

import pytest

from brainguard.exceptions import TransientStoreError
from brainguard.schemas.daily_summary import AppUsageSnapshot, DailySummaryData
from brainguard.schemas.usage import UsageRecord
from brainguard.services.events import UsageRecorded
from brainguard.utils.constants import HOUR_MS, META_ALLOWED_TIME_MS, MINUTE_MS

HOST_PACKAGE = "com.soumikganguly.brainrot"
TODAY = date(2026, 3, 10)
YESTERDAY = date(2026, 3, 9)


def test_raw_path_filters_monitored_and_host(monitored, aggregator):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
        UsageRecord(date=TODAY, package_name="com.google.android.youtube", app_name="YouTube", total_ms=3 * HOUR_MS),
        UsageRecord(date=TODAY, package_name=HOST_PACKAGE, app_name="Brainrot", total_ms=HOUR_MS),
        UsageRecord(date=TODAY, package_name="com.unmonitored", app_name="Other", total_ms=HOUR_MS),
    ])

    result = aggregator.get_today_score()

    assert result.total_usage_ms == 4 * HOUR_MS
    assert result.score == 50
    assert [a.package_name for a in result.apps] == ["com.google.android.youtube", "com.instagram.android"]


def test_allowed_time_meta_changes_score(monitored, aggregator):
    monitored.set_meta(META_ALLOWED_TIME_MS, str(2 * HOUR_MS))
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    assert aggregator.get_today_score().score == 50


def test_cache_returns_same_value_within_ttl(monitored, aggregator, clock):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    first = aggregator.get_score_for_date(TODAY)

    # 캐시 무효화 없이 쓰기 -> TTL 안에서는 이전 값
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=2 * HOUR_MS),
    ])
    clock.advance(seconds=30)
    assert aggregator.get_score_for_date(TODAY) == first

    aggregator.invalidate(TODAY)
    fresh = aggregator.get_score_for_date(TODAY)
    assert fresh != first
    assert fresh.total_usage_ms == 2 * HOUR_MS


def test_cache_expires_after_ttl(monitored, aggregator, clock):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    aggregator.get_score_for_date(TODAY)
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=2 * HOUR_MS),
    ])

    clock.advance(seconds=61)
    assert aggregator.get_score_for_date(TODAY).total_usage_ms == 2 * HOUR_MS


def test_usage_recorded_event_invalidates(monitored, aggregator, bus):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    aggregator.get_score_for_date(TODAY)
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=2 * HOUR_MS),
    ])

    bus.publish(UsageRecorded(usage_date=TODAY))

    assert aggregator.get_score_for_date(TODAY).total_usage_ms == 2 * HOUR_MS


def test_stored_summary_wins_over_raw(monitored, aggregator):
    monitored.upsert_daily_usage(YESTERDAY, [
        UsageRecord(date=YESTERDAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    monitored.save_daily_summary(DailySummaryData(
        date=YESTERDAY,
        total_screen_time_ms=5 * MINUTE_MS,
        score=99,
        apps=[AppUsageSnapshot(package_name="com.instagram.android", app_name="Instagram", total_time_ms=5 * MINUTE_MS)],
    ))

    result = aggregator.get_score_for_date(YESTERDAY)
    assert result.score == 99
    assert result.total_usage_ms == 5 * MINUTE_MS


def test_today_is_never_persisted(monitored, aggregator):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    aggregator.get_today_score()
    assert monitored.get_daily_summary(TODAY) is None


def test_store_failure_serves_stale_then_raises(monitored, aggregator, clock, monkeypatch):
    monitored.upsert_daily_usage(TODAY, [
        UsageRecord(date=TODAY, package_name="com.instagram.android", app_name="Instagram", total_ms=HOUR_MS),
    ])
    cached = aggregator.get_score_for_date(TODAY)

    def broken(_date):
        raise TransientStoreError("database is locked")

    monkeypatch.setattr(monitored, "get_daily_summary", broken)
    clock.advance(minutes=5)

    assert aggregator.get_score_for_date(TODAY) == cached

    aggregator.invalidate()
    with pytest.raises(TransientStoreError):
        aggregator.get_score_for_date(TODAY)
