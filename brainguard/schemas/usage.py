from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date


class CollectedUsage(BaseModel):
    # usage_since() 결과 한 줄 (start 시각 이후 누적)
    package_name: str
    total_foreground_ms: int = Field(ge=0)
    last_used_at: int = 0
    app_name: Optional[str] = None


class UsageSample(BaseModel):
    package_name: str
    app_name: str
    total_foreground_ms: int
    as_of: int  # epoch ms


class ForegroundApp(BaseModel):
    package_name: str
    app_name: Optional[str] = None


class UsageRecord(BaseModel):
    date: date
    package_name: str
    app_name: str
    total_ms: int

    class Config:
        from_attributes = True


class UsageUploadRequest(BaseModel):
    apps: List[CollectedUsage]  # 오늘 0시 이후 누적 사용량 스냅샷
    foreground: Optional[ForegroundApp] = None


class UsageUploadResponse(BaseModel):
    saved_count: int
    message: str
