"""Local-time helpers for period, weekday and time-slot filters.

Stored timestamps are naive UTC. Filters are evaluated in the clinic's local
time zone, passed in as a ``tzinfo`` (``Config.LOCAL_TZ`` by default).
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

PERIOD_ALL = 'all'
PERIOD_THIS_WEEK = 'this_week'
PERIOD_THIS_MONTH = 'this_month'
PERIOD_LAST_MONTH = 'last_month'
PERIODS = (PERIOD_ALL, PERIOD_THIS_WEEK, PERIOD_THIS_MONTH, PERIOD_LAST_MONTH)

SLOT_MORNING = 'morning'  # 0-12 时
SLOT_AFTERNOON = 'afternoon'  # 12-24 时
TIME_SLOTS = (SLOT_MORNING, SLOT_AFTERNOON)


def _as_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_now(now: Optional[datetime], tz) -> datetime:
    """``now`` (naive means UTC) or the current instant, expressed in ``tz``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return _as_aware_utc(now).astimezone(tz)


def to_local(value: datetime, tz) -> datetime:
    return _as_aware_utc(value).astimezone(tz)


def to_utc_naive(value: datetime) -> datetime:
    return _as_aware_utc(value).replace(tzinfo=None)


def local_month_start(now: Optional[datetime], tz) -> datetime:
    current = local_now(now, tz)
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def period_bounds(period: Optional[str], now: Optional[datetime], tz) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return the ``[from, to)`` range of a period as naive UTC; ``None`` means unbounded."""
    if not period or period == PERIOD_ALL:
        return None, None

    current = local_now(now, tz)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == PERIOD_THIS_WEEK:
        # 一周从周日开始
        days_since_sunday = (current.weekday() + 1) % 7
        return to_utc_naive(midnight - timedelta(days=days_since_sunday)), None
    if period == PERIOD_THIS_MONTH:
        return to_utc_naive(midnight.replace(day=1)), None
    if period == PERIOD_LAST_MONTH:
        this_month = midnight.replace(day=1)
        last_month = (this_month - timedelta(days=1)).replace(day=1)
        return to_utc_naive(last_month), to_utc_naive(this_month)
    raise ValueError(f"unknown period: {period}")


def local_weekday(value: datetime, tz) -> int:
    """Weekday in local time, 0=Sunday .. 6=Saturday."""
    return (to_local(value, tz).weekday() + 1) % 7


def in_time_slot(value: datetime, slot: str, tz) -> bool:
    hour = to_local(value, tz).hour
    if slot == SLOT_MORNING:
        return hour < 12
    if slot == SLOT_AFTERNOON:
        return hour >= 12
    raise ValueError(f"unknown time slot: {slot}")
