"""
Date helpers shared by ingestion and the aggregate queries
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Grouping(str, Enum):
    """Time bucket used to aggregate a trend series"""
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def infer_grouping(start_date: datetime, end_date: datetime) -> Grouping:
    """
    Pick a bucket granularity from the number of whole days between the bounds.

    0 days -> hourly, 1-7 -> daily, 8-30 -> weekly, anything longer -> monthly.
    """
    days = (end_date - start_date).days
    if days <= 0:
        return Grouping.HOURLY
    if days <= 7:
        return Grouping.DAILY
    if days <= 30:
        return Grouping.WEEKLY
    return Grouping.MONTHLY


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def is_valid_timezone(tz_name: str) -> bool:
    try:
        get_zone(tz_name)
    except ValueError:
        return False
    return True


def to_start_of_day_utc(day: date, tz_name: str = "UTC") -> datetime:
    """Midnight of ``day`` in ``tz_name``, expressed in UTC"""
    local = datetime.combine(day, time.min, tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def to_end_of_day_utc(day: date, tz_name: str = "UTC") -> datetime:
    """Last millisecond of ``day`` in ``tz_name``, expressed in UTC"""
    local = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. Returns None when the value is missing
    or cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso_utc(value: datetime) -> str:
    """Format as ``2025-03-02T16:25:32.819Z``"""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def convert_to_local_timezone(value: Union[str, datetime], tz_name: str = "UTC") -> Union[str, datetime]:
    """
    Render a stored timestamp as an ISO-8601 string in the caller's timezone.

    Values that don't parse are returned unchanged.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone(get_zone(tz_name)).isoformat()


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def seconds_until_next_month(now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` until the first of next month at 00:00 UTC"""
    now = now or datetime.now(timezone.utc)
    year, month = next_month(now.year, now.month)
    target = datetime(year, month, 1, tzinfo=timezone.utc)
    return max((target - now) / timedelta(seconds=1), 0.0)
