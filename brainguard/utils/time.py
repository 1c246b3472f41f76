from datetime import datetime, time, timedelta

from brainguard.utils.constants import HOUR_MS, MINUTE_MS


def format_duration(ms: int) -> str:
    # 1h 5m / 45m
    hours = ms // HOUR_MS
    minutes = (ms % HOUR_MS) // MINUTE_MS
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def to_epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min, tzinfo=dt.tzinfo)


def next_midnight(dt: datetime) -> datetime:
    return start_of_day(dt) + timedelta(days=1)


def parse_hhmm(value: str) -> time:
    h, m = map(int, value.split(":"))
    return time(h, m)
