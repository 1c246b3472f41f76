from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from brainguard.context import ServiceContext, get_context
from brainguard.exceptions import TransientStoreError
from brainguard.schemas.usage import ForegroundApp, UsageRecord, UsageUploadRequest, UsageUploadResponse
from brainguard.services.clock import today
from brainguard.services.events import UsageRecorded
from brainguard.utils.constants import get_app_display_name

router = APIRouter()


@router.post("/upload", response_model=UsageUploadResponse)
def upload_usage(payload: UsageUploadRequest, ctx: ServiceContext = Depends(get_context)):
    usage_date = today(ctx.clock)

    # 1. 수집기 스냅샷 갱신 (다음 tick에서 사용)
    ctx.collector.record_snapshot(payload.apps, usage_date)

    # 2. raw usage upsert (max-wins)
    records = [
        UsageRecord(
            date=usage_date,
            package_name=app.package_name,
            app_name=app.app_name or get_app_display_name(app.package_name),
            total_ms=app.total_foreground_ms,
        )
        for app in payload.apps
        if app.total_foreground_ms > 0
    ]
    try:
        saved = ctx.store.upsert_daily_usage(usage_date, records)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if saved:
        ctx.bus.publish(UsageRecorded(usage_date=usage_date))

    # 3. foreground 변경은 realtime 신호로 전달
    if payload.foreground is not None:
        ctx.collector.push_foreground(payload.foreground)

    return UsageUploadResponse(saved_count=saved, message="Usage upload successful")


@router.post("/foreground")
def push_foreground(app: Optional[ForegroundApp] = None, ctx: ServiceContext = Depends(get_context)):
    ctx.collector.push_foreground(app)
    return {"message": "foreground updated"}


@router.post("/permission")
def set_permission(granted: bool, ctx: ServiceContext = Depends(get_context)):
    ctx.collector.set_permission(granted)
    return {"permission_granted": granted}
