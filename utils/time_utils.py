from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo


@lru_cache(maxsize=16)
def get_timezone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes coming back from the store are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_local(value: datetime, tz_name: str) -> datetime:
    return ensure_aware(value).astimezone(get_timezone(tz_name))


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    return to_local(now or utc_now(), tz_name).date()


def minute_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def parse_iso_datetime(value: str) -> datetime:
    """ISO-8601 parser that also accepts a trailing 'Z'."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    return ensure_aware(parsed)
