# brainguard/cron/backfill_summaries.py

import os
import sys

# 패키지 루트 상위까지 자동 등록
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(BASE_DIR)

from brainguard.config import settings
from brainguard.database import SessionLocal, init_db
from brainguard.services.clock import SystemClock
from brainguard.services.daily_summary_service import DailySummaryService
from brainguard.services.score_service import ScoreAggregator
from brainguard.services.store import UsageStore


def backfill_summaries(days: int = settings.backfill_days, session_factory=SessionLocal, clock=None):
    clock = clock or SystemClock()
    store = UsageStore(session_factory)
    aggregator = ScoreAggregator(store, clock, settings.host_package, ttl_seconds=settings.score_cache_ttl_seconds)
    service = DailySummaryService(store, aggregator, clock)

    report = service.backfill(days)
    print(
        f"[BACKFILL] {report.created} created, {report.skipped} skipped, "
        f"{report.errors} errors, {report.duplicates_removed} duplicates removed"
    )
    return report


if __name__ == "__main__":
    init_db()
    backfill_summaries()
