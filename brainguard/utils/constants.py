from enum import Enum


class Intensity(str, Enum):
    MILD = "mild"
    NORMAL = "normal"
    HARSH = "harsh"
    CRITICAL = "critical"


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

# 하루 허용 사용 시간 (meta daily_allowed_time_ms 없을 때 적용)
DEFAULT_ALLOWED_TIME_MS = 8 * HOUR_MS

# (duration_ms, intensity) - duration 오름차순
USAGE_THRESHOLDS = [
    (30 * MINUTE_MS, Intensity.MILD),
    (45 * MINUTE_MS, Intensity.NORMAL),
    (60 * MINUTE_MS, Intensity.HARSH),
    (90 * MINUTE_MS, Intensity.CRITICAL),
    (120 * MINUTE_MS, Intensity.CRITICAL),
]

# 같은 (앱, 강도) 알림 재발송 최소 간격 - 강도가 높을수록 짧음
NOTIFICATION_COOLDOWNS_MS = {
    Intensity.MILD: 24 * HOUR_MS,
    Intensity.NORMAL: 12 * HOUR_MS,
    Intensity.HARSH: 4 * HOUR_MS,
    Intensity.CRITICAL: 2 * HOUR_MS,
}

DEFAULT_MONITORED_APPS = [
    "com.google.android.youtube",
    "com.instagram.android",
    "com.ss.android.ugc.tiktok",
    "com.facebook.katana",
    "com.twitter.android",
]

APP_DISPLAY_NAMES = {
    "com.google.android.youtube": "YouTube",
    "com.instagram.android": "Instagram",
    "com.ss.android.ugc.tiktok": "TikTok",
    "com.zhiliaoapp.musically": "TikTok",
    "com.facebook.katana": "Facebook",
    "com.facebook.orca": "Messenger",
    "com.twitter.android": "X",
    "com.snapchat.android": "Snapchat",
    "com.reddit.frontpage": "Reddit",
    "com.whatsapp": "WhatsApp",
    "com.discord": "Discord",
    "com.kakao.talk": "KakaoTalk",
    "com.netflix.mediaclient": "Netflix",
    "com.spotify.music": "Spotify",
    "com.android.chrome": "Chrome",
}

# meta 테이블 키
META_MONITORED_APPS = "monitored_apps"
META_MONITORING_ENABLED = "monitoring_enabled"
META_MONITORING_STARTED_AT = "monitoring_started_at"
META_NOTIFICATIONS_ENABLED = "notifications_enabled"
META_SNOOZE_UNTIL = "notifications_snooze_until"
META_ALLOWED_TIME_MS = "daily_allowed_time_ms"
META_LAST_DAILY_RESET = "last_daily_reset"
META_LAST_RESET_DURATION_MS = "last_reset_duration_ms"
META_DAILY_RESET_COUNT = "daily_reset_count"
META_LAST_RESET_ERROR = "last_reset_error"
META_APP_BLOCKING_ENABLED = "app_blocking_enabled"
META_BLOCKED_APPS = "blocked_apps"
META_BLOCKING_MODE = "blocking_mode"
META_BLOCK_SCHEDULE_ENABLED = "block_schedule_enabled"
META_BLOCK_SCHEDULE_START = "block_schedule_start"
META_BLOCK_SCHEDULE_END = "block_schedule_end"
META_FCM_DEVICE_TOKEN = "fcm_device_token"


def cooldown_key(app_name: str, intensity: Intensity) -> str:
    return f"last_notification_{app_name}_{intensity.value}"


def get_app_display_name(package_name: str) -> str:
    if package_name in APP_DISPLAY_NAMES:
        return APP_DISPLAY_NAMES[package_name]

    # com.example.someapp -> Someapp
    tail = package_name.rsplit(".", 1)[-1]
    return tail.capitalize() if tail else package_name
