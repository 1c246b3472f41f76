# brainguard/services/collector.py

import logging
from datetime import date, datetime
from threading import RLock
from typing import Dict, List, Optional

from brainguard.schemas.usage import CollectedUsage, ForegroundApp

logger = logging.getLogger(__name__)


class UploadedUsageCollector:
    """Collector fed by the device over HTTP.

    The device uploads its cumulative since-midnight snapshot and pushes
    foreground changes; ticks read the latest snapshot back through the
    regular collector contract.
    """

    def __init__(self):
        self._lock = RLock()
        self._snapshot: Dict[str, CollectedUsage] = {}
        self._snapshot_date: Optional[date] = None
        self._foreground: Optional[ForegroundApp] = None
        self._permission_granted = False
        self._realtime_callback = None

    # ---------- device side ----------

    def record_snapshot(self, apps: List[CollectedUsage], usage_date: date) -> None:
        with self._lock:
            if self._snapshot_date != usage_date:
                # 새 날짜의 누적값은 0부터 다시 시작
                self._snapshot.clear()
                self._snapshot_date = usage_date
            for app in apps:
                current = self._snapshot.get(app.package_name)
                if current is None or app.total_foreground_ms >= current.total_foreground_ms:
                    self._snapshot[app.package_name] = app
            # 업로드가 들어온다는 것 자체가 권한이 있다는 의미
            self._permission_granted = True

    def set_permission(self, granted: bool) -> None:
        with self._lock:
            self._permission_granted = granted

    def push_foreground(self, app: Optional[ForegroundApp]) -> None:
        with self._lock:
            changed = app is not None and (
                self._foreground is None or self._foreground.package_name != app.package_name
            )
            self._foreground = app
            callback = self._realtime_callback

        if changed and callback is not None:
            callback(app)

    # ---------- collector contract ----------

    def usage_since(self, timestamp_ms: int) -> List[CollectedUsage]:
        since_date = datetime.fromtimestamp(timestamp_ms / 1000).date()
        with self._lock:
            if self._snapshot_date != since_date:
                # 자정 이후 첫 업로드 전: 어제 누적값을 오늘 것으로 쓰지 않음
                return []
            return [
                app for app in self._snapshot.values()
                if not app.last_used_at or app.last_used_at >= timestamp_ms
            ]

    def current_foreground_app(self) -> Optional[ForegroundApp]:
        with self._lock:
            return self._foreground

    def permission_granted(self) -> bool:
        with self._lock:
            return self._permission_granted

    def start_realtime(self, callback) -> bool:
        with self._lock:
            self._realtime_callback = callback
        logger.info("Realtime foreground detection attached")
        return True

    def stop_realtime(self) -> None:
        with self._lock:
            self._realtime_callback = None
