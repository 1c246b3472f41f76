from datetime import date, timedelta
import logging

from brainguard.exceptions import TransientStoreError
from brainguard.schemas.daily_summary import BackfillReport, DailySummaryData, DayScore, SummaryStats
from brainguard.services.clock import today

logger = logging.getLogger(__name__)


class DailySummaryService:
    """Commits closed days into immutable summaries and reconciles history.

    Summaries are always computed through the aggregator's raw-usage path, so
    they use the monitored set as it is *now*. Backfilling an old date after the
    user changed their monitored apps reinterprets that day under the new
    selection; the historical selection is not recorded anywhere.
    """

    def __init__(self, store, aggregator, clock):
        self.store = store
        self.aggregator = aggregator
        self.clock = clock

    # 1. 하루치 raw usage → summary
    def commit_summary_for_date(self, target_date: date, force: bool = False) -> bool:
        # 오늘(또는 미래)은 아직 끝나지 않은 날이라 저장하지 않음
        if target_date >= today(self.clock):
            logger.info(f"[SUMMARY] {target_date} is not closed yet, skipping commit")
            return False

        if not force and self.store.get_daily_summary(target_date) is not None:
            return False

        raw_rows = self.store.get_daily_usage(target_date)
        if not raw_rows:
            # 사용 기록 없음 -> 레코드 생성 안 함
            logger.info(f"[SUMMARY] No raw usage for {target_date}")
            return False

        result = self.aggregator.compute_from_raw_usage(target_date)
        if not result.apps and not force:
            logger.info(f"[SUMMARY] No monitored usage for {target_date}, skipping")
            return False

        summary = DailySummaryData(
            date=target_date,
            total_screen_time_ms=result.total_usage_ms,
            score=result.score,
            apps=result.apps,
        )
        saved = self.store.save_daily_summary(summary, force=force)
        self.aggregator.invalidate(target_date)

        if saved:
            logger.info(
                f"[SUMMARY] Saved {target_date}: {result.total_usage_ms // 60000}min, score {result.score}"
            )
        return saved

    # 2. 어제 요약 (자정 리셋에서 호출)
    def commit_yesterday(self) -> bool:
        return self.commit_summary_for_date(today(self.clock) - timedelta(days=1))

    # 3. 강제 재계산
    def refresh_daily_summary(self, target_date: date) -> bool:
        if target_date >= today(self.clock):
            # 오늘은 캐시만 비우고 다음 조회에서 새로 계산
            self.aggregator.invalidate(target_date)
            return True

        try:
            return self.commit_summary_for_date(target_date, force=True)
        except TransientStoreError as e:
            logger.error(f"[SUMMARY] Refresh failed for {target_date}: {e}")
            return False

    # 4. 과거 데이터 backfill
    def backfill(self, days: int = 30) -> BackfillReport:
        report = BackfillReport()
        end = today(self.clock) - timedelta(days=1)
        start = end - timedelta(days=max(0, days - 1))

        try:
            report.duplicates_removed = self.store.cleanup_duplicate_entries()
        except TransientStoreError as e:
            logger.warning(f"[BACKFILL] Duplicate cleanup failed: {e}")

        try:
            dates = self.store.dates_with_usage(start, end)
        except TransientStoreError as e:
            logger.error(f"[BACKFILL] Could not list usage dates: {e}")
            report.errors += 1
            return report

        for d in dates:
            try:
                if self.store.get_daily_summary(d) is not None:
                    report.skipped += 1
                    continue

                if self.commit_summary_for_date(d):
                    report.created += 1
                else:
                    report.skipped += 1
            except TransientStoreError as e:
                logger.error(f"[BACKFILL] Error backfilling {d}: {e}")
                report.errors += 1

        if report.duplicates_removed:
            self.aggregator.invalidate()

        logger.info(
            f"[BACKFILL] Completed: {report.created} created, {report.skipped} skipped, "
            f"{report.errors} errors"
        )
        return report

    # 5. 기간 통계
    def get_summary_stats(self, days: int = 7) -> SummaryStats:
        since = today(self.clock) - timedelta(days=days)
        history = self.store.get_summaries_since(since)

        if not history:
            return SummaryStats(
                average_screen_time_ms=0,
                average_score=100,
                best_day=DayScore(day=None, score=100),
                worst_day=DayScore(day=None, score=100),
                total_days=0,
                improving=False,
            )

        total_time = sum(s.total_screen_time_ms for s in history)
        total_score = sum(s.score for s in history)

        best = max(history, key=lambda s: s.score)
        worst = min(history, key=lambda s: s.score)

        # 전반부 vs 후반부 평균 점수 비교 (history는 날짜 오름차순)
        midpoint = len(history) // 2
        first_half = history[:midpoint]
        second_half = history[midpoint:]
        improving = False
        if first_half and second_half:
            first_avg = sum(s.score for s in first_half) / len(first_half)
            second_avg = sum(s.score for s in second_half) / len(second_half)
            improving = second_avg > first_avg

        return SummaryStats(
            average_screen_time_ms=round(total_time / len(history)),
            average_score=round(total_score / len(history)),
            best_day=DayScore(day=best.date, score=best.score),
            worst_day=DayScore(day=worst.date, score=worst.score),
            total_days=len(history),
            improving=improving,
        )
