"""Port for the OS-level usage collector."""

from typing import Callable, List, Optional, Protocol

from brainguard.schemas.usage import CollectedUsage, ForegroundApp


ForegroundCallback = Callable[[ForegroundApp], None]


class UsageCollector(Protocol):
    """Source of per-app foreground usage. Never assumed infallible."""

    def usage_since(self, timestamp_ms: int) -> List[CollectedUsage]:
        """Cumulative foreground time per package since ``timestamp_ms``."""

    def current_foreground_app(self) -> Optional[ForegroundApp]:
        """The app currently in the foreground, or None if unknown."""

    def permission_granted(self) -> bool:
        """Whether usage access has been granted on the device."""

    def start_realtime(self, callback: ForegroundCallback) -> bool:
        """Begin pushing foreground-change signals; False if unsupported."""

    def stop_realtime(self) -> None:
        """Stop pushing foreground-change signals."""
