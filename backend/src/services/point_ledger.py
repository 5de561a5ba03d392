"""Point ledger: the append-only point log plus each staff member's running total.

Every settlement writes a PointLog row and moves ``Staff.current_points`` by
the same amount inside the caller's session, so both land or neither does.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import Config
from ..models.staff import Staff
from ..models.point_log import PointLog
from ..models.action_log import (
    ACTION_CONFIRMED,
    ACTION_WORKING,
    ACTION_SOLVED,
    ACTION_REPLY,
    ACTION_POST_DIARY,
)
from . import diary_store
from .period import local_month_start, to_utc_naive

POINTS = {
    ACTION_CONFIRMED: 1,
    ACTION_WORKING: 5,
    ACTION_SOLVED: 10,
    ACTION_REPLY: 3,
    ACTION_POST_DIARY: 2,
}


class PointLedgerError(Exception):
    """Base exception for ledger failures."""


class PointValidationError(PointLedgerError):
    """Raised when an adjustment payload is malformed."""


class PointPermissionError(PointLedgerError):
    """Raised when a non-admin attempts an administrative adjustment."""


class PointStaffNotFoundError(PointLedgerError):
    """Raised when the staff member to credit does not exist."""


def points_for_action(action: str) -> int:
    """Points granted for an action; unknown actions are worth nothing."""
    return POINTS.get(action, 0)


def award_points(
    session: Session, staff_id: int, amount: int, reason: str, diary_id: Optional[int] = None
) -> PointLog:
    """Append a ledger entry and move the staff total by ``amount`` (may be negative).

    Runs inside the caller's transaction; nothing is committed here. Totals
    are not clamped, so a revocation can leave a negative balance.
    """
    entry = diary_store.append_point_log(session, staff_id, amount, reason, diary_id)
    diary_store.increment_staff_points(session, staff_id, amount)
    logging.info("Points settled: staff=%s amount=%+d reason=%r diary=%s", staff_id, amount, reason, diary_id)
    return entry


def point_log_to_dict(entry: PointLog) -> Dict[str, object]:
    return {
        "id": entry.id,
        "staff_id": entry.staff_id,
        "amount": entry.amount,
        "reason": entry.reason,
        "diary_id": entry.diary_id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def get_point_history(staff_id: int, limit: int = 100) -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        entries = (
            session.query(PointLog)
            .filter(PointLog.staff_id == staff_id)
            .order_by(PointLog.created_at.desc(), PointLog.id.desc())
            .limit(limit)
            .all()
        )
        return [point_log_to_dict(entry) for entry in entries]


def get_monthly_points(staff_id: int, now: Optional[datetime] = None, tz=None) -> int:
    """Sum of the staff member's ledger entries since the start of the local month."""
    tz = tz or Config.LOCAL_TZ
    month_start = to_utc_naive(local_month_start(now, tz))
    with diary_store.store_session() as session:
        total = (
            session.query(func.coalesce(func.sum(PointLog.amount), 0))
            .filter(PointLog.staff_id == staff_id, PointLog.created_at >= month_start)
            .scalar()
        )
        return int(total or 0)


def adjust_points(admin_id: int, staff_id: int, amount: object, reason: Optional[str]) -> Dict[str, object]:
    """Administrative credit/debit. Carries no diary, so category rankings never see it."""
    try:
        delta = int(amount)
    except (TypeError, ValueError) as exc:
        raise PointValidationError("amount must be an integer") from exc
    if delta == 0:
        raise PointValidationError("amount must not be zero")
    note = (reason or "").strip()
    if not note:
        raise PointValidationError("reason is required")

    with diary_store.store_session(commit_on_success=True) as session:
        admin = session.get(Staff, admin_id)
        if not admin or not admin.is_admin:
            raise PointPermissionError("Admin access required")
        if not session.get(Staff, staff_id):
            raise PointStaffNotFoundError("Staff not found")
        entry = award_points(session, staff_id, delta, f"adjustment: {note}")
        current = diary_store.get_staff_current_points(session, staff_id)
        return {"entry": point_log_to_dict(entry), "current_points": current}


def audit_point_totals() -> Dict[str, object]:
    """Compare each staff member's ledger sum with the stored running total.

    Divergences are logged and reported; nothing is corrected.
    """
    checked = 0
    mismatches = []
    with diary_store.store_session() as session:
        ledger_sums = dict(
            session.query(PointLog.staff_id, func.coalesce(func.sum(PointLog.amount), 0))
            .group_by(PointLog.staff_id)
            .all()
        )
        for staff in session.query(Staff).order_by(Staff.id.asc()).all():
            checked += 1
            ledger_total = int(ledger_sums.get(staff.id, 0) or 0)
            stored_total = int(staff.current_points or 0)
            if ledger_total == stored_total:
                continue
            logging.warning(
                "Point total mismatch: staff=%s ledger=%s stored=%s", staff.id, ledger_total, stored_total
            )
            mismatches.append({
                "staff_id": staff.id,
                "name": staff.name,
                "ledger_total": ledger_total,
                "current_points": stored_total,
                "difference": stored_total - ledger_total,
            })
    return {"checked": checked, "mismatches": mismatches}
