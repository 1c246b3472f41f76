# brainguard/models/__init__.py
from brainguard.models.daily_usage import DailyUsage
from brainguard.models.daily_summary import DailySummary
from brainguard.models.meta import Meta
from brainguard.models.app_settings import AppSetting
from brainguard.models.notification_history import NotificationHistory
