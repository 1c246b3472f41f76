from datetime import date

import pytest

from brainguard.exceptions import TransientStoreError
from brainguard.models.daily_summary import DailySummary
from brainguard.schemas.daily_summary import AppUsageSnapshot, DailySummaryData
from brainguard.schemas.usage import UsageRecord
from brainguard.services.monitored_apps import ensure_default_monitored_apps, resolve_monitored_packages
from brainguard.utils.constants import DEFAULT_MONITORED_APPS, META_MONITORED_APPS

D = date(2026, 3, 9)


def usage(pkg, total):
    return UsageRecord(date=D, package_name=pkg, app_name=pkg.rsplit(".", 1)[-1], total_ms=total)


def summary(score=80, total=1000):
    return DailySummaryData(
        date=D,
        total_screen_time_ms=total,
        score=score,
        apps=[AppUsageSnapshot(package_name="com.a", app_name="A", total_time_ms=total)],
    )


def test_meta_roundtrip_and_malformed_values(store):
    assert store.get_meta("missing") is None

    store.set_meta("k", "1")
    store.set_meta("k", "2")
    assert store.get_meta("k") == "2"

    store.set_meta("n", "abc")
    assert store.get_meta_int("n", 7) == 7

    store.set_meta("list", "{not json")
    assert store.get_meta_json_list("list") == []
    store.set_meta("list", '{"a": 1}')
    assert store.get_meta_json_list("list") == []
    store.set_meta("list", '["x", "y"]')
    assert store.get_meta_json_list("list") == ["x", "y"]


def test_upsert_is_max_wins_and_idempotent(store):
    assert store.upsert_daily_usage(D, [usage("com.a", 100)]) == 1
    assert store.upsert_daily_usage(D, [usage("com.a", 50)]) == 0
    assert store.upsert_daily_usage(D, [usage("com.a", 300)]) == 1
    assert store.upsert_daily_usage(D, [usage("com.a", 300)]) == 0

    rows = store.get_daily_usage(D)
    assert [(r.package_name, r.total_ms) for r in rows] == [("com.a", 300)]
    assert store.cleanup_duplicate_entries() == 0


def test_upsert_collapses_duplicates_within_one_batch(store):
    store.upsert_daily_usage(D, [usage("com.a", 100), usage("com.a", 300), usage("com.b", 5)])
    rows = store.get_daily_usage(D)
    assert [(r.package_name, r.total_ms) for r in rows] == [("com.a", 300), ("com.b", 5)]
    assert store.dates_with_usage(date(2026, 3, 1), date(2026, 3, 31)) == [D]


def test_summary_is_not_overwritten_unless_forced(store):
    assert store.save_daily_summary(summary(score=80)) is True
    assert store.save_daily_summary(summary(score=10)) is False
    assert store.get_daily_summary(D).score == 80

    assert store.save_daily_summary(summary(score=10), force=True) is True
    assert store.get_daily_summary(D).score == 10


def test_malformed_summary_blob_reads_as_absent(store):
    store.save_daily_summary(summary())
    with store.session() as db:
        db.get(DailySummary, D).apps_json = "{{broken"

    assert store.get_daily_summary(D) is None
    assert store.get_summaries_since(date(2026, 3, 1)) == []


def test_notification_history_retention(store):
    store.save_notification_history("com.a", "mild", 1000, date(2026, 1, 1))
    store.save_notification_history("com.a", "harsh", 2000, D)

    assert [n.intensity for n in store.get_notification_history(D)] == ["harsh"]
    assert store.delete_notification_history_before(date(2026, 2, 1)) == 1
    assert store.get_notification_history(date(2026, 1, 1)) == []


def test_monitored_set_prefers_app_settings(store):
    store.set_meta(META_MONITORED_APPS, '["com.meta.only"]')
    assert resolve_monitored_packages(store) == {"com.meta.only"}

    store.set_monitored_packages(["com.a", "com.b"], {"com.a": "A", "com.b": "B"})
    assert resolve_monitored_packages(store) == {"com.a", "com.b"}

    store.set_monitored_packages(["com.b"], {})
    assert resolve_monitored_packages(store) == {"com.b"}


def test_monitored_set_malformed_meta_is_empty(store):
    store.set_meta(META_MONITORED_APPS, "not-a-list")
    assert resolve_monitored_packages(store) == set()


def test_defaults_seeded_on_first_run(store):
    assert ensure_default_monitored_apps(store) == set(DEFAULT_MONITORED_APPS)
    assert resolve_monitored_packages(store) == set(DEFAULT_MONITORED_APPS)


def test_strict_monitored_lookup_raises_when_store_is_unreadable(store, monkeypatch):
    store.set_monitored_packages(["com.a"], {"com.a": "A"})

    def locked(*args, **kwargs):
        raise TransientStoreError("database is locked")

    monkeypatch.setattr(store, "get_app_settings", locked)
    assert resolve_monitored_packages(store) == set()
    with pytest.raises(TransientStoreError):
        resolve_monitored_packages(store, strict=True)

    # meta 목록이 남아 있으면 그쪽으로 대체 가능
    store.set_meta(META_MONITORED_APPS, '["com.meta.only"]')
    assert resolve_monitored_packages(store, strict=True) == {"com.meta.only"}
