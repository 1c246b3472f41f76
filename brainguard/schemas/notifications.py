from pydantic import BaseModel
from datetime import date
from typing import List


class NotificationHistoryItem(BaseModel):
    noti_id: int
    package_name: str
    intensity: str
    sent_at: int
    date: date

    class Config:
        from_attributes = True


class NotificationHistoryResponse(BaseModel):
    date: date
    notifications: List[NotificationHistoryItem]


class SnoozeRequest(BaseModel):
    minutes: int


class NotificationToggleRequest(BaseModel):
    enabled: bool
