import json

from fastapi import APIRouter, Depends, HTTPException
from typing import List

from brainguard.context import ServiceContext, get_context
from brainguard.exceptions import TransientStoreError
from brainguard.schemas.monitoring import AppSettingItem, MonitoredAppsRequest, MonitoredAppsResponse
from brainguard.schemas.settings import (
    AllowedTimeRequest,
    AppSettingUpdateRequest,
    BlockingSettingsRequest,
    DeviceTokenRequest,
)
from brainguard.services.monitored_apps import resolve_monitored_packages
from brainguard.utils.constants import (
    META_ALLOWED_TIME_MS,
    META_APP_BLOCKING_ENABLED,
    META_BLOCK_SCHEDULE_ENABLED,
    META_BLOCK_SCHEDULE_END,
    META_BLOCK_SCHEDULE_START,
    META_BLOCKED_APPS,
    META_BLOCKING_MODE,
    META_FCM_DEVICE_TOKEN,
    get_app_display_name,
)

router = APIRouter()


@router.get("/apps", response_model=List[AppSettingItem])
def get_app_settings(ctx: ServiceContext = Depends(get_context)):
    return ctx.store.get_app_settings()


@router.put("/apps/{package_name}", response_model=List[AppSettingItem])
def update_app_setting(package_name: str, payload: AppSettingUpdateRequest, ctx: ServiceContext = Depends(get_context)):
    try:
        ctx.store.update_app_setting(
            package_name,
            get_app_display_name(package_name),
            monitored=payload.monitored,
            daily_limit_ms=payload.daily_limit_ms,
        )
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    ctx.coordinator.on_monitored_apps_changed()
    ctx.aggregator.invalidate()
    return ctx.store.get_app_settings()


@router.get("/monitored-apps", response_model=MonitoredAppsResponse)
def get_monitored_apps(ctx: ServiceContext = Depends(get_context)):
    return MonitoredAppsResponse(packages=sorted(resolve_monitored_packages(ctx.store)))


@router.put("/monitored-apps", response_model=MonitoredAppsResponse)
def set_monitored_apps(payload: MonitoredAppsRequest, ctx: ServiceContext = Depends(get_context)):
    names = {pkg: get_app_display_name(pkg) for pkg in payload.packages}
    try:
        ctx.store.set_monitored_packages(payload.packages, names)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    # 트래커 재동기화 + 점수 캐시 무효화
    ctx.coordinator.on_monitored_apps_changed()
    ctx.aggregator.invalidate()
    return MonitoredAppsResponse(packages=sorted(resolve_monitored_packages(ctx.store)))


@router.put("/allowed-time")
def set_allowed_time(payload: AllowedTimeRequest, ctx: ServiceContext = Depends(get_context)):
    ctx.store.set_meta(META_ALLOWED_TIME_MS, str(payload.allowed_time_ms))
    ctx.aggregator.invalidate()
    return {"allowed_time_ms": payload.allowed_time_ms}


@router.put("/blocking")
def set_blocking(payload: BlockingSettingsRequest, ctx: ServiceContext = Depends(get_context)):
    ctx.store.set_meta(META_APP_BLOCKING_ENABLED, "true" if payload.enabled else "false")
    ctx.store.set_meta(META_BLOCKED_APPS, json.dumps(payload.blocked_apps))
    ctx.store.set_meta(META_BLOCKING_MODE, payload.mode)
    ctx.store.set_meta(META_BLOCK_SCHEDULE_ENABLED, "true" if payload.schedule_enabled else "false")
    if payload.schedule_start:
        ctx.store.set_meta(META_BLOCK_SCHEDULE_START, payload.schedule_start)
    if payload.schedule_end:
        ctx.store.set_meta(META_BLOCK_SCHEDULE_END, payload.schedule_end)
    return {"message": "blocking settings saved"}


# 푸시 알림용 기기 토큰 등록
@router.post("/device-token")
def register_device_token(payload: DeviceTokenRequest, ctx: ServiceContext = Depends(get_context)):
    ctx.store.set_meta(META_FCM_DEVICE_TOKEN, payload.fcm_token)
    return {"message": "device token registered"}
