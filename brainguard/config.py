# brainguard/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str
    poll_interval_seconds: int
    initial_check_delay_seconds: int
    score_cache_ttl_seconds: float
    external_call_timeout_seconds: float
    backfill_days: int
    notification_retention_days: int
    host_package: str
    log_level: str
    fcm_key_path: Optional[str]

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("BRAINGUARD_DATABASE_URL", "sqlite:///./brainguard.db"),
            poll_interval_seconds=_env_int("BRAINGUARD_POLL_INTERVAL_SECONDS", 10 * 60),
            initial_check_delay_seconds=_env_int("BRAINGUARD_INITIAL_CHECK_DELAY_SECONDS", 5),
            score_cache_ttl_seconds=_env_float("BRAINGUARD_SCORE_CACHE_TTL_SECONDS", 60.0),
            external_call_timeout_seconds=_env_float("BRAINGUARD_EXTERNAL_CALL_TIMEOUT_SECONDS", 10.0),
            backfill_days=_env_int("BRAINGUARD_BACKFILL_DAYS", 30),
            notification_retention_days=_env_int("BRAINGUARD_NOTIFICATION_RETENTION_DAYS", 30),
            host_package=os.getenv("BRAINGUARD_HOST_PACKAGE", "com.soumikganguly.brainrot"),
            log_level=os.getenv("BRAINGUARD_LOG_LEVEL", "INFO").upper(),
            fcm_key_path=os.getenv("BRAINGUARD_FCM_KEY_PATH") or None,
        )


settings = Settings.from_env()
