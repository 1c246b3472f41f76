from pydantic import BaseModel
from datetime import date, datetime
from typing import List, Optional


class TrackerStatus(BaseModel):
    package_name: str
    app_name: str
    today_usage_ms: int
    notification_count: int


class MonitoringStatus(BaseModel):
    state: str
    is_monitoring: bool
    tracked_apps: int
    background_enabled: bool
    realtime_enabled: bool
    check_count: int
    tracking_date: Optional[date] = None
    tracking_details: List[TrackerStatus]


class ResetStatus(BaseModel):
    is_initialized: bool
    next_reset_scheduled: bool
    next_reset_time: Optional[datetime] = None
    last_reset_time: Optional[str] = None
    reset_count: int = 0


class MonitoredAppsRequest(BaseModel):
    packages: List[str]


class MonitoredAppsResponse(BaseModel):
    packages: List[str]


class AppSettingItem(BaseModel):
    package_name: str
    app_name: str
    monitored: bool
    daily_limit_ms: int

    class Config:
        from_attributes = True
