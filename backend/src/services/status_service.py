"""Per-user diary status toggling and the diary's aggregate status.

A toggle is one transaction: the diary row is locked, the user's status,
the action log and the point ledger are written, and the aggregate status
is recomputed before commit. Points for an action are paid at most once
while its action-log row exists.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError

from ..config import Config
from ..models.base import utcnow
from ..models.staff import Staff
from ..models.diary import (
    STATUS_UNREAD,
    STATUS_CONFIRMED,
    STATUS_WORKING,
    STATUS_SOLVED,
)
from . import diary_store
from .point_ledger import award_points, points_for_action

TOGGLEABLE_STATUSES = (STATUS_CONFIRMED, STATUS_WORKING, STATUS_SOLVED)


class StatusServiceError(Exception):
    """Base exception for status toggle failures."""


class StatusValidationError(StatusServiceError):
    """Raised when the requested status is not a toggleable value."""


class StatusNotFoundError(StatusServiceError):
    """Raised when the diary or the staff member does not exist."""


class StatusConflictError(StatusServiceError):
    """Raised when concurrent toggles keep colliding after every retry."""


def fallback_status(statuses: Sequence[str]) -> str:
    """Aggregate for a diary nobody has solved: WORKING beats CONFIRMED beats UNREAD."""
    if STATUS_WORKING in statuses:
        return STATUS_WORKING
    if STATUS_CONFIRMED in statuses:
        return STATUS_CONFIRMED
    return STATUS_UNREAD


def derive_aggregate_status(
    prior_status: str,
    prior_solver: Optional[int],
    toggled_status: str,
    is_toggle_off: bool,
    actor_id: int,
    participants: Sequence[Tuple[int, str]],
) -> Tuple[str, Optional[int]]:
    """Return ``(aggregate_status, solver_id)`` after one user's toggle.

    ``participants`` holds ``(staff_id, status)`` for every user row of the
    diary after the toggle, oldest update first. SOLVED dominates: it is set
    as soon as anyone solves and stays while any row still holds SOLVED, so
    other users' non-SOLVED changes leave it alone. When the last SOLVED row
    goes away (un-solve, or the solver switching to another status) the rows
    are re-scanned. Otherwise the last activation wins.
    """
    if toggled_status == STATUS_SOLVED and not is_toggle_off:
        return STATUS_SOLVED, actor_id

    if toggled_status == STATUS_SOLVED or prior_status == STATUS_SOLVED:
        solvers = [staff_id for staff_id, status in participants if status == STATUS_SOLVED]
        if solvers:
            # 仍有人标记为已解决：保留原解决人，否则交给最近的解决人
            solver = prior_solver if prior_solver in solvers else solvers[-1]
            return STATUS_SOLVED, solver
        return fallback_status([status for _, status in participants]), None

    if not is_toggle_off:
        return toggled_status, None
    return fallback_status([status for _, status in participants]), None


def _validate_status(status: object) -> str:
    value = (status or "").strip().upper() if isinstance(status, str) else None
    if value not in TOGGLEABLE_STATUSES:
        raise StatusValidationError(
            f"status must be one of {', '.join(TOGGLEABLE_STATUSES)}"
        )
    return value


def _toggle_once(diary_id: int, staff_id: int, requested: str) -> Dict[str, object]:
    with diary_store.store_session(commit_on_success=True) as session:
        diary = diary_store.lock_diary(session, diary_id)
        if not diary or diary.is_deleted:
            raise StatusNotFoundError("Diary not found")
        if not session.get(Staff, staff_id):
            raise StatusNotFoundError("Staff not found")

        existing = diary_store.get_user_diary_status(session, diary_id, staff_id)
        current = existing.status if existing else STATUS_UNREAD
        is_toggle_off = requested == current
        new_status = STATUS_UNREAD if is_toggle_off else requested
        diary_store.upsert_user_diary_status(session, diary_id, staff_id, new_status)

        points_delta = 0
        award = diary_store.get_action_log(session, diary_id, staff_id, requested)
        if is_toggle_off:
            if award:
                points_delta = -award.points_awarded
                diary_store.delete_action_log(session, award.id)
                award_points(session, staff_id, points_delta, f"revoke: {requested}", diary_id)
            else:
                logging.info("No award to revoke: diary=%s staff=%s action=%s", diary_id, staff_id, requested)
        elif not award:
            points_delta = points_for_action(requested)
            diary_store.insert_action_log(session, diary_id, staff_id, requested, points_delta)
            award_points(session, staff_id, points_delta, f"action: {requested}", diary_id)

        participants: List[Tuple[int, str]] = [
            (row.staff_id, row.status) for row in diary_store.get_diary_statuses(session, diary_id)
        ]
        prior_status = diary.current_status
        aggregate, solver = derive_aggregate_status(
            prior_status, diary.solved_by, requested, is_toggle_off, staff_id, participants
        )
        if aggregate == STATUS_SOLVED:
            solved_at = diary.solved_at if solver == diary.solved_by and diary.solved_at else utcnow()
            diary_store.update_diary_aggregate_status(session, diary, aggregate, solver, solved_at)
        else:
            diary_store.update_diary_aggregate_status(session, diary, aggregate)

        logging.info(
            "Status toggled: diary=%s staff=%s %s -> %s (diary %s -> %s)",
            diary_id, staff_id, current, new_status, prior_status, aggregate,
        )
        return {
            "success": True,
            "isToggleOff": is_toggle_off,
            "status": new_status,
            "diary_status": aggregate,
            "solved_by": diary.solved_by,
            "points_delta": points_delta,
        }


def toggle_status(diary_id: int, staff_id: int, status: object) -> Dict[str, object]:
    """Toggle ``staff_id``'s personal status on a diary.

    Requesting the status the user already has turns it off (back to UNREAD)
    and revokes the matching award; any other status is activated and paid
    once. Unique-constraint collisions from a concurrent toggle are retried.
    """
    requested = _validate_status(status)
    attempts = max(1, Config.STATUS_TOGGLE_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            return _toggle_once(diary_id, staff_id, requested)
        except IntegrityError as exc:
            if attempt >= attempts:
                raise StatusConflictError("Status was changed concurrently, please retry") from exc
            logging.warning(
                "Toggle conflict on diary=%s staff=%s (attempt %s/%s): %s",
                diary_id, staff_id, attempt, attempts, exc.orig,
            )
    raise StatusConflictError("Status was changed concurrently, please retry")
