"""In-process event bus between the monitoring engine and its subscribers."""

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import date
import logging
from threading import RLock
from typing import Callable, Deque, Dict, List, Optional, Type

from brainguard.utils.constants import Intensity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdCrossed:
    package_name: str
    app_name: str
    intensity: Intensity
    threshold_index: int
    total_today_ms: int


@dataclass(frozen=True)
class ForegroundAppDetected:
    package_name: str
    app_name: str
    monitored: bool


@dataclass(frozen=True)
class UsageRecorded:
    usage_date: date


@dataclass(frozen=True)
class BlockRequested:
    package_name: str
    app_name: str
    mode: str  # soft / hard


Handler = Callable[[object], None]


class EventBus:
    """Thread-safe fire-and-notify pub/sub with a bounded history.

    Subscribers register at construction time of the component that owns them.
    A failing subscriber is logged and never affects the publisher or the other
    subscribers.
    """

    def __init__(self, history_limit: int = 256):
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)
        self._history: Deque[object] = deque(maxlen=history_limit)
        self._lock = RLock()

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def publish(self, event: object) -> None:
        with self._lock:
            self._history.append(event)
            handlers = list(self._handlers.get(type(event), ()))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)

    def recent(self, event_type: Optional[Type] = None, limit: int = 50) -> List[object]:
        with self._lock:
            events = [e for e in self._history if event_type is None or isinstance(e, event_type)]
        return events[-limit:] if limit > 0 else []
