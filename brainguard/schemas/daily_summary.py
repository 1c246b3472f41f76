from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime


class AppUsageSnapshot(BaseModel):
    package_name: str
    app_name: str
    total_time_ms: int


class ScoreResult(BaseModel):
    total_usage_ms: int
    score: int
    apps: List[AppUsageSnapshot]


class DailySummaryData(BaseModel):
    date: date
    total_screen_time_ms: int
    score: int
    apps: List[AppUsageSnapshot]
    created_at: Optional[datetime] = None


class ScoreResponse(ScoreResult):
    date: date
    label: str
    status: str


class BackfillReport(BaseModel):
    created: int = 0
    skipped: int = 0
    errors: int = 0
    duplicates_removed: int = 0


class DayScore(BaseModel):
    day: Optional[date] = None
    score: int


class SummaryStats(BaseModel):
    average_screen_time_ms: int
    average_score: int
    best_day: DayScore
    worst_day: DayScore
    total_days: int
    improving: bool
