"""
Time helpers. All user-facing timestamps are local to ``settings.TIMEZONE``.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from triplog.core.config import settings

Clock = Callable[[], datetime]

DATETIME_FORMAT = "%Y/%m/%d %H:%M"
DATE_FORMAT = "%Y/%m/%d"


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """Timezone-aware current time in the configured zone"""
    return datetime.now(local_tz())


def format_datetime(dt: datetime) -> str:
    return dt.strftime(DATETIME_FORMAT)


def format_date(dt: datetime) -> str:
    return dt.strftime(DATE_FORMAT)


def recent_dates(now: datetime, days: int = 7) -> list[str]:
    """Today first, then the previous ``days - 1`` days, as ``YYYY/MM/DD``"""
    return [format_date(now - timedelta(days=offset)) for offset in range(days)]


def ensure_aware(dt: datetime) -> datetime:
    """Naive values read back from SQLite are UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
