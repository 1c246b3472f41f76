# brainguard/services/coordinator.py

import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Optional

from brainguard.exceptions import TransientStoreError
from brainguard.services.clock import now_ms
from brainguard.services.events import BlockRequested, ForegroundAppDetected, ThresholdCrossed
from brainguard.utils.constants import (
    META_APP_BLOCKING_ENABLED,
    META_BLOCK_SCHEDULE_ENABLED,
    META_BLOCK_SCHEDULE_END,
    META_BLOCK_SCHEDULE_START,
    META_BLOCKED_APPS,
    META_BLOCKING_MODE,
)
from brainguard.utils.time import parse_hhmm

logger = logging.getLogger(__name__)

BLOCK_CHECK_DEBOUNCE_MS = 5000


class ServiceCoordinator:
    """Turns engine events into blocking requests.

    Subscribes to the bus when constructed; the engine never knows about it.
    """

    def __init__(self, store, engine, bus, clock, block_handler: Optional[Callable[[BlockRequested], None]] = None):
        self.store = store
        self.engine = engine
        self.bus = bus
        self.clock = clock
        self.block_handler = block_handler
        self._last_check: Dict[str, int] = {}
        self._lock = Lock()

        bus.subscribe(ThresholdCrossed, self._on_threshold_crossed)
        bus.subscribe(ForegroundAppDetected, self._on_foreground_detected)

    def _on_threshold_crossed(self, event: ThresholdCrossed) -> None:
        self.check_if_app_should_be_blocked(event.package_name, event.app_name)

    def _on_foreground_detected(self, event: ForegroundAppDetected) -> None:
        self.check_if_app_should_be_blocked(event.package_name, event.app_name)

    def check_if_app_should_be_blocked(self, package_name: str, app_name: str) -> Optional[BlockRequested]:
        now = now_ms(self.clock)
        with self._lock:
            last = self._last_check.get(package_name)
            if last is not None and now - last < BLOCK_CHECK_DEBOUNCE_MS:
                return None
            self._last_check[package_name] = now

        try:
            if self.store.get_meta(META_APP_BLOCKING_ENABLED) != "true":
                return None
            if package_name not in self.store.get_meta_json_list(META_BLOCKED_APPS):
                return None
            hard = self.store.get_meta(META_BLOCKING_MODE) == "hard" or self.is_in_blocked_schedule()
        except TransientStoreError as e:
            logger.warning(f"Blocking check failed for {package_name}: {e}")
            return None

        request = BlockRequested(package_name=package_name, app_name=app_name, mode="hard" if hard else "soft")
        logger.info(f"Blocked app {package_name} detected, requesting {request.mode} block")
        self.bus.publish(request)

        if self.block_handler is not None:
            try:
                self.block_handler(request)
            except Exception:
                logger.exception(f"Block handler failed for {package_name}")
        return request

    def is_in_blocked_schedule(self, at: Optional[datetime] = None) -> bool:
        if self.store.get_meta(META_BLOCK_SCHEDULE_ENABLED) != "true":
            return False

        try:
            start = parse_hhmm(self.store.get_meta(META_BLOCK_SCHEDULE_START) or "22:00")
            end = parse_hhmm(self.store.get_meta(META_BLOCK_SCHEDULE_END) or "06:00")
        except ValueError:
            logger.warning("Malformed block schedule, ignoring")
            return False

        current = (at or self.clock.now()).time().replace(second=0, microsecond=0)
        if start > end:
            # 자정을 넘기는 구간 (예: 22:00 ~ 06:00)
            return current >= start or current <= end
        return start <= current <= end

    def on_monitored_apps_changed(self) -> None:
        logger.info("Monitored apps changed, refreshing trackers")
        self.engine.refresh_monitored_apps()

    def trigger_manual_check(self, package_name: Optional[str] = None) -> int:
        sent = self.engine.trigger_manual_check()
        if package_name:
            tracker = self.engine.trackers.get(package_name)
            self.check_if_app_should_be_blocked(package_name, tracker.app_name if tracker else package_name)
        return sent
