from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date

from brainguard.context import ServiceContext, get_context
from brainguard.exceptions import TransientStoreError
from brainguard.schemas.daily_summary import BackfillReport, DailySummaryData, SummaryStats

router = APIRouter()


def _parse_date(date_str: str) -> date:
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {date_str}")


# 기간 통계
@router.get("/stats", response_model=SummaryStats)
def get_summary_stats(days: int = Query(7, ge=1, le=365), ctx: ServiceContext = Depends(get_context)):
    try:
        return ctx.summary_service.get_summary_stats(days)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


# 과거 데이터 backfill
@router.post("/backfill", response_model=BackfillReport)
def backfill(days: int = Query(30, ge=1, le=365), ctx: ServiceContext = Depends(get_context)):
    return ctx.summary_service.backfill(days)


# 수동으로 특정 날짜 요약 다시 만들기
@router.post("/refresh/{date_str}")
def refresh_summary(date_str: str, ctx: ServiceContext = Depends(get_context)):
    target_date = _parse_date(date_str)
    refreshed = ctx.summary_service.refresh_daily_summary(target_date)
    return {"message": "summary refreshed" if refreshed else "nothing to refresh", "date": date_str}


@router.get("/{date_str}", response_model=DailySummaryData)
def get_daily_summary(date_str: str, ctx: ServiceContext = Depends(get_context)):
    target_date = _parse_date(date_str)
    try:
        summary = ctx.store.get_daily_summary(target_date)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for {date_str}")
    return summary
