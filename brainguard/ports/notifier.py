"""Port for the device notification primitive."""

from typing import Protocol


class Notifier(Protocol):
    def send(self, title: str, body: str, severity: str) -> None:
        """Best-effort delivery. May raise; callers must not propagate."""
