from fastapi import APIRouter, Depends, HTTPException
from datetime import date

from brainguard.context import ServiceContext, get_context
from brainguard.exceptions import TransientStoreError
from brainguard.schemas.notifications import (
    NotificationHistoryResponse,
    NotificationToggleRequest,
    SnoozeRequest,
)
from brainguard.services.clock import now_ms
from brainguard.utils.constants import META_NOTIFICATIONS_ENABLED, META_SNOOZE_UNTIL, MINUTE_MS

router = APIRouter()


@router.get("/history/{date_str}", response_model=NotificationHistoryResponse)
def get_history(date_str: str, ctx: ServiceContext = Depends(get_context)):
    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {date_str}")

    try:
        items = ctx.store.get_notification_history(target_date)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return NotificationHistoryResponse(date=target_date, notifications=items)


# 알림 일시 중지 (minutes <= 0 이면 해제)
@router.post("/snooze")
def snooze(payload: SnoozeRequest, ctx: ServiceContext = Depends(get_context)):
    until = now_ms(ctx.clock) + payload.minutes * MINUTE_MS if payload.minutes > 0 else 0
    ctx.store.set_meta(META_SNOOZE_UNTIL, str(until))
    return {"snooze_until": until}


@router.post("/toggle")
def toggle(payload: NotificationToggleRequest, ctx: ServiceContext = Depends(get_context)):
    ctx.store.set_meta(META_NOTIFICATIONS_ENABLED, "true" if payload.enabled else "false")
    return {"enabled": payload.enabled}
