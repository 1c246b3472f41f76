# brainguard/services/notification_service.py

import logging
import random

from brainguard.exceptions import TransientStoreError
from brainguard.ports.notifier import Notifier
from brainguard.services.clock import now_ms
from brainguard.services.message_manager import MessageManager
from brainguard.utils.constants import Intensity, NOTIFICATION_COOLDOWNS_MS, cooldown_key

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Cooldown-guarded wrapper around the external notifier."""

    def __init__(self, store, notifier: Notifier, clock, cooldowns_ms=None, rng=None):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.cooldowns_ms = dict(cooldowns_ms or NOTIFICATION_COOLDOWNS_MS)
        ordered = [self.cooldowns_ms[i] for i in (Intensity.MILD, Intensity.NORMAL, Intensity.HARSH, Intensity.CRITICAL)]
        if any(a <= b for a, b in zip(ordered, ordered[1:])):
            raise ValueError("cooldowns must strictly decrease as intensity increases")
        self.rng = rng or random.Random()

    def try_send(self, app_name: str, intensity: Intensity, formatted_duration: str) -> bool:
        """Send one alert unless (app_name, intensity) is still cooling down.

        Returns True when a delivery was attempted. The last-sent timestamp is
        written whether or not delivery succeeds.
        """
        key = cooldown_key(app_name, intensity)
        now = now_ms(self.clock)

        try:
            last_sent = self.store.get_meta_int(key, 0)
        except TransientStoreError as e:
            logger.warning(f"Cooldown lookup failed for {app_name}/{intensity.value}, skipping: {e}")
            return False

        if now - last_sent < self.cooldowns_ms[intensity]:
            logger.info(f"{app_name}/{intensity.value} still in cooldown, not sending")
            return False

        msg = MessageManager.construct_message(intensity, app_name, formatted_duration, rng=self.rng)

        try:
            self.notifier.send(msg["title"], msg["body"], msg["severity"])
        except Exception:
            logger.exception(f"Notification delivery failed for {app_name}/{intensity.value}")
        finally:
            try:
                self.store.set_meta(key, str(now))
            except TransientStoreError as e:
                logger.warning(f"Could not record cooldown for {app_name}/{intensity.value}: {e}")

        return True
