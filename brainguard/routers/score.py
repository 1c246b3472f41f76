from fastapi import APIRouter, Depends, HTTPException
from datetime import date

from brainguard.context import ServiceContext, get_context
from brainguard.exceptions import TransientStoreError
from brainguard.schemas.daily_summary import ScoreResponse
from brainguard.services.clock import today
from brainguard.services.score import score_label, score_status

router = APIRouter()


def _score_response(ctx: ServiceContext, target_date: date) -> ScoreResponse:
    try:
        result = ctx.aggregator.get_score_for_date(target_date)
    except TransientStoreError as e:
        # 캐시도 없으면 503
        raise HTTPException(status_code=503, detail=str(e))

    return ScoreResponse(
        date=target_date,
        total_usage_ms=result.total_usage_ms,
        score=result.score,
        apps=result.apps,
        label=score_label(result.score),
        status=score_status(result.score),
    )


@router.get("/today", response_model=ScoreResponse)
def get_today_score(ctx: ServiceContext = Depends(get_context)):
    return _score_response(ctx, today(ctx.clock))


@router.get("/{date_str}", response_model=ScoreResponse)
def get_score(date_str: str, ctx: ServiceContext = Depends(get_context)):
    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {date_str}")
    return _score_response(ctx, target_date)
