from pydantic import BaseModel, Field
from typing import List, Optional


class AllowedTimeRequest(BaseModel):
    allowed_time_ms: int = Field(gt=0)


class DeviceTokenRequest(BaseModel):
    fcm_token: str


class BlockingSettingsRequest(BaseModel):
    enabled: bool
    blocked_apps: List[str] = []
    mode: str = Field("soft", pattern="^(soft|hard)$")
    schedule_enabled: bool = False
    schedule_start: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    schedule_end: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")


class AppSettingUpdateRequest(BaseModel):
    monitored: bool = True
    daily_limit_ms: Optional[int] = Field(None, gt=0)
