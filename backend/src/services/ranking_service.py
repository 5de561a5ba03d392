"""Point leaderboard.

Without filters the ranking reads the running totals on ``staff``. With a
category filter it replays ``action_logs`` joined to the diary category, so
entries without a diary (administrative adjustments) never count toward a
category. With other filters only it replays ``point_logs``. Weekday and
time-slot filters are applied in the clinic's local time.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import Config
from ..models.category import Category
from ..models.job_type import JobType
from ..models.staff import Staff
from . import diary_store
from .period import (
    PERIODS,
    PERIOD_ALL,
    TIME_SLOTS,
    in_time_slot,
    local_weekday,
    period_bounds,
)

FILTER_ALL = 'all'


class RankingValidationError(Exception):
    """Raised when a filter value is not recognised."""


def _clean(value: Optional[object]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == FILTER_ALL:
        return None
    return text


def parse_ranking_filter(args: Optional[Dict[str, object]]) -> Dict[str, object]:
    """Normalise raw filter values; ``all`` or blank means the dimension is unused."""
    args = args or {}
    category = _clean(args.get("category"))

    period = _clean(args.get("period"))
    if period is not None and period not in PERIODS:
        raise RankingValidationError(f"period must be one of {', '.join(PERIODS)}")
    if period == PERIOD_ALL:
        period = None

    day_of_week = _clean(args.get("dayOfWeek", args.get("day_of_week")))
    if day_of_week is not None:
        try:
            day_of_week = int(day_of_week)
        except ValueError as exc:
            raise RankingValidationError("dayOfWeek must be 0 (Sunday) to 6 (Saturday)") from exc
        if not 0 <= day_of_week <= 6:
            raise RankingValidationError("dayOfWeek must be 0 (Sunday) to 6 (Saturday)")

    time_slot = _clean(args.get("timeSlot", args.get("time_slot")))
    if time_slot is not None and time_slot not in TIME_SLOTS:
        raise RankingValidationError(f"timeSlot must be one of {', '.join(TIME_SLOTS)}")

    return {
        "category": category,
        "period": period,
        "day_of_week": day_of_week,
        "time_slot": time_slot,
    }


def has_filters(filters: Dict[str, object]) -> bool:
    return any(filters.get(key) is not None for key in ("category", "period", "day_of_week", "time_slot"))


def _matches_clock(created_at: datetime, filters: Dict[str, object], tz) -> bool:
    day_of_week = filters.get("day_of_week")
    if day_of_week is not None and local_weekday(created_at, tz) != day_of_week:
        return False
    time_slot = filters.get("time_slot")
    if time_slot is not None and not in_time_slot(created_at, time_slot, tz):
        return False
    return True


def _sum_by_staff(rows: Iterable[Tuple[int, int, datetime]], filters: Dict[str, object], tz) -> Dict[int, int]:
    totals: Dict[int, int] = {}
    for staff_id, amount, created_at in rows:
        if not _matches_clock(created_at, filters, tz):
            continue
        totals[staff_id] = totals.get(staff_id, 0) + int(amount or 0)
    return totals


def _rank(totals: Dict[int, int], staff_info: Dict[int, Tuple[str, str]], limit: int) -> List[Dict[str, object]]:
    entries = [
        {
            "staff_id": staff_id,
            "name": staff_info[staff_id][0],
            "job_type_name": staff_info[staff_id][1],
            "total_points": total,
        }
        for staff_id, total in sorted(totals.items())
        if total > 0 and staff_id in staff_info
    ]
    # 稳定排序：同分时按 staff_id 升序
    entries.sort(key=lambda entry: entry["total_points"], reverse=True)
    entries = entries[:limit]
    for index, entry in enumerate(entries, start=1):
        entry["rank"] = index
    return entries


def _resolve_category_id(session, category: str) -> Optional[int]:
    if category.isdigit():
        row = session.get(Category, int(category))
    else:
        row = session.query(Category).filter(Category.name == category).first()
    return row.id if row else None


def compute_ranking(
    filters: Optional[Dict[str, object]] = None,
    now: Optional[datetime] = None,
    tz=None,
    limit: Optional[int] = None,
) -> List[Dict[str, object]]:
    """Top staff by points under the given filters (see ``parse_ranking_filter``)."""
    filters = parse_ranking_filter(filters)
    tz = tz or Config.LOCAL_TZ
    limit = limit if limit is not None else Config.RANKING_LIMIT

    with diary_store.store_session() as session:
        job_names = dict(session.query(JobType.id, JobType.name).all())
        active_staff = session.query(Staff).filter(Staff.is_active.is_(True)).all()
        staff_info = {s.id: (s.name, job_names.get(s.job_type_id, "")) for s in active_staff}

        if not has_filters(filters):
            totals = {s.id: int(s.current_points or 0) for s in active_staff}
            return _rank(totals, staff_info, limit)

        try:
            date_from, date_to = period_bounds(filters["period"], now, tz)
        except ValueError as exc:
            raise RankingValidationError(str(exc)) from exc

        if filters["category"] is not None:
            category_id = _resolve_category_id(session, filters["category"])
            if category_id is None:
                return []
            rows = diary_store.query_action_logs(session, date_from, date_to, category_id)
        else:
            rows = diary_store.query_point_logs(session, date_from, date_to)

        return _rank(_sum_by_staff(rows, filters, tz), staff_info, limit)


def list_ranking_categories() -> List[str]:
    with diary_store.store_session() as session:
        rows = session.query(Category.name).order_by(Category.sort_order, Category.id).all()
        return [name for (name,) in rows]
