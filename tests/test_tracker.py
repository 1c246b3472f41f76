from brainguard.schemas.usage import UsageSample
from brainguard.services.tracker import DEFAULT_THRESHOLDS, AppTracker, Threshold
from brainguard.utils.constants import Intensity, MINUTE_MS


def sample(minutes, as_of=1):
    return UsageSample(
        package_name="com.instagram.android",
        app_name="Instagram",
        total_foreground_ms=int(minutes * MINUTE_MS),
        as_of=as_of,
    )


def test_update_only_moves_forward():
    tracker = AppTracker("com.instagram.android", "Instagram")

    assert tracker.update(sample(10)) == 10 * MINUTE_MS
    # 늦게 도착한 작은 샘플은 무시
    assert tracker.update(sample(5)) == 0
    assert tracker.total_today_ms == 10 * MINUTE_MS
    assert tracker.update(sample(10)) == 0
    assert tracker.update(sample(12, as_of=99)) == 2 * MINUTE_MS
    assert tracker.last_checked_at == 99


def test_thresholds_crossed_ascending_and_excludes_notified():
    tracker = AppTracker("com.instagram.android", "Instagram")
    tracker.update(sample(65))

    crossed = tracker.thresholds_crossed(DEFAULT_THRESHOLDS)
    assert [index for index, _ in crossed] == [0, 1, 2]
    assert [t.intensity for _, t in crossed] == [Intensity.MILD, Intensity.NORMAL, Intensity.HARSH]

    tracker.mark_notified(0)
    assert [index for index, _ in tracker.thresholds_crossed(DEFAULT_THRESHOLDS)] == [1, 2]


def test_thresholds_sorted_even_when_given_unsorted():
    thresholds = [Threshold(60 * MINUTE_MS, Intensity.HARSH), Threshold(30 * MINUTE_MS, Intensity.MILD)]
    tracker = AppTracker("com.instagram.android", "Instagram", total_today_ms=61 * MINUTE_MS)

    crossed = tracker.thresholds_crossed(thresholds)
    assert [t.duration_ms for _, t in crossed] == [30 * MINUTE_MS, 60 * MINUTE_MS]
    assert crossed[0][0] == 1


def test_reset_clears_usage_and_notifications():
    tracker = AppTracker("com.instagram.android", "Instagram", total_today_ms=95 * MINUTE_MS)
    tracker.mark_notified(0)
    tracker.mark_notified(3)

    tracker.reset(now_ms=1234)

    assert tracker.total_today_ms == 0
    assert tracker.notified_thresholds == set()
    assert tracker.last_checked_at == 1234


def test_negative_seed_is_clamped():
    assert AppTracker("p", "P", total_today_ms=-10).total_today_ms == 0
