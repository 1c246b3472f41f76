from fastapi import APIRouter, Depends, HTTPException

from brainguard.context import ServiceContext, get_context
from brainguard.schemas.monitoring import MonitoringStatus, ResetStatus

router = APIRouter()


@router.post("/start", response_model=MonitoringStatus)
def start_monitoring(ctx: ServiceContext = Depends(get_context)):
    if not ctx.engine.start():
        raise HTTPException(status_code=409, detail="Usage access permission not granted")
    return ctx.engine.get_monitoring_status()


@router.post("/stop", response_model=MonitoringStatus)
def stop_monitoring(ctx: ServiceContext = Depends(get_context)):
    ctx.engine.stop()
    return ctx.engine.get_monitoring_status()


@router.get("/status", response_model=MonitoringStatus)
def get_status(ctx: ServiceContext = Depends(get_context)):
    return ctx.engine.get_monitoring_status()


@router.post("/check")
def trigger_check(ctx: ServiceContext = Depends(get_context)):
    sent = ctx.coordinator.trigger_manual_check()
    return {"message": "check completed", "notifications": sent}


@router.get("/reset-status", response_model=ResetStatus)
def get_reset_status(ctx: ServiceContext = Depends(get_context)):
    return ctx.reset_service.get_reset_status()


@router.post("/reset", response_model=ResetStatus)
def trigger_reset(ctx: ServiceContext = Depends(get_context)):
    if not ctx.reset_service.trigger_manual_reset():
        raise HTTPException(status_code=409, detail="Reset already in progress")
    return ctx.reset_service.get_reset_status()
