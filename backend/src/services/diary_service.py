"""Diary posting, threading and housekeeping.

Posting a diary or a reply pays the author inside the same transaction as
the insert. Replies copy their parent's target date and category, and edits
to a parent's date or category are pushed down to its replies.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from ..config import Config
from ..models.base import utcnow
from ..models.category import Category
from ..models.diary import Diary, STATUS_UNREAD, STATUS_SOLVED
from ..models.job_type import JobType
from ..models.staff import Staff
from ..models.action_log import ACTION_POST_DIARY, ACTION_REPLY
from ..models.user_diary_status import UserDiaryStatus
from ..utils import diary_to_dict
from . import diary_store
from .mention_service import resolve_mentions
from .period import local_now
from .point_ledger import award_points, points_for_action


class DiaryServiceError(Exception):
    """Base exception for diary service failures."""


class DiaryValidationError(DiaryServiceError):
    """Raised when payloads are missing required fields or carry bad values."""


class DiaryNotFoundError(DiaryServiceError):
    """Raised when a diary (or its author) cannot be found."""


class DiaryPermissionError(DiaryServiceError):
    """Raised when the caller may not modify the diary."""


def _normalize_text(value: Optional[object], field_label: str, max_length: Optional[int] = None) -> str:
    text = (value if isinstance(value, str) else "").strip()
    if not text:
        raise DiaryValidationError(f"{field_label} is required")
    if max_length and len(text) > max_length:
        raise DiaryValidationError(f"{field_label} must be at most {max_length} characters")
    return text


def _parse_date(value: Optional[object], field_label: str, *, required: bool = False) -> Optional[date]:
    if value in (None, ""):
        if required:
            raise DiaryValidationError(f"{field_label} is required")
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise DiaryValidationError(f"{field_label} must be an ISO date (YYYY-MM-DD)") from exc


def _parse_bool(value: Optional[object]) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _parse_id(value: Optional[object], field_label: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DiaryValidationError(f"{field_label} must be an integer") from exc


def _parse_bounty(value: Optional[object]) -> Optional[int]:
    """Optional bounty; 0 or blank means no bounty."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise DiaryValidationError("bounty_points must be a non-negative integer")
    try:
        bounty = int(value)
    except (TypeError, ValueError) as exc:
        raise DiaryValidationError("bounty_points must be a non-negative integer") from exc
    if bounty < 0:
        raise DiaryValidationError("bounty_points must be a non-negative integer")
    return bounty or None


def _parse_tag_ids(value: Optional[object]) -> List[int]:
    if value in (None, ""):
        return []
    if not isinstance(value, (list, tuple)):
        raise DiaryValidationError("tag_ids must be a list of integers")
    tag_ids: List[int] = []
    for item in value:
        if isinstance(item, bool):
            raise DiaryValidationError("tag_ids must be a list of integers")
        try:
            tag_id = int(item)
        except (TypeError, ValueError) as exc:
            raise DiaryValidationError("tag_ids must be a list of integers") from exc
        if tag_id not in tag_ids:
            tag_ids.append(tag_id)
    return tag_ids


def _active_category(
session: Session, category_id: Optional[int]) -> Category:
    if category_id is None:
        raise DiaryValidationError("category_id is required")
    category = session.get(Category, category_id)
    if not category or not category.is_active:
        raise DiaryValidationError("Category does not exist or is disabled")
    return category


def _load_diary(session: Session, diary_id: int) -> Diary:
    diary = (
        session.query(Diary)
        .options(
            selectinload(Diary.replies).selectinload(Diary.tags),
            selectinload(Diary.tags),
            selectinload(Diary.user_statuses).selectinload(UserDiaryStatus.staff),
        )
        .filter(Diary.id == diary_id)
        .first()
    )
    if not diary or diary.is_deleted:
        raise DiaryNotFoundError("Diary not found")
    return diary


def _require_editor(session: Session, staff_id: int, diary: Diary) -> Staff:
    staff = session.get(Staff, staff_id)
    if not staff:
        raise DiaryNotFoundError("Staff not found")
    if diary.staff_id != staff_id and not staff.is_admin:
        raise DiaryPermissionError("Only the author or an administrator can change this diary")
    return staff


def _mention_directory(session: Session):
    staff_rows = session.query(Staff).filter(Staff.is_active.is_(True)).all()
    job_rows = session.query(JobType).all()
    directory = [{"id": s.id, "name": s.name, "job_type_id": s.job_type_id} for s in staff_rows]
    jobs = [{"id": j.id, "name": j.name} for j in job_rows]
    return directory, jobs


def _with_viewer(payload: Dict[str, object], diary: Diary, viewer_id: Optional[int], directory, jobs) -> Dict[str, object]:
    if viewer_id is None:
        return payload
    payload["mentions_viewer"] = viewer_id in resolve_mentions(diary.content, directory, jobs)
    payload["my_status"] = next(
        (row.status for row in diary.user_statuses if row.staff_id == viewer_id),
        STATUS_UNREAD,
    )
    return payload


def create_diary(staff_id: int, payload: Dict[str, object]) -> Dict[str, object]:
    """Post a diary or, with ``parent_id``, a reply; pays POST_DIARY or REPLY points."""
    if not isinstance(payload, dict):
        raise DiaryValidationError("Request body must be a JSON object")

    parent_id = _parse_id(payload.get("parent_id"), "parent_id")
    content = _normalize_text(payload.get("content"), "content")
    is_urgent = _parse_bool(payload.get("is_urgent"))
    deadline = _parse_date(payload.get("deadline"), "deadline")
    bounty_points = _parse_bounty(payload.get("bounty_points"))
    tag_ids = _parse_tag_ids(payload.get("tag_ids"))

    with diary_store.store_session(commit_on_success=True) as session:
        author = session.get(Staff, staff_id)
        if not author or not author.is_active:
            raise DiaryNotFoundError("Staff not found or not yet approved")

        if parent_id is not None:
            parent = session.get(Diary, parent_id)
            if not parent or parent.is_deleted:
                raise DiaryNotFoundError("Parent diary not found")
            if parent.parent_id is not None:
                raise DiaryValidationError("Replies cannot be replied to")
            title = (payload.get("title") or "").strip() or f"Re: {parent.title}"
            category_id = parent.category_id
            target_date = parent.target_date
            action = ACTION_REPLY
            reason = "reply"
        else:
            title = _normalize_text(payload.get("title"), "title", max_length=200)
            category_id = _active_category(session, _parse_id(payload.get("category_id"), "category_id")).id
            target_date = _parse_date(payload.get("target_date"), "target_date", required=True)
            action = ACTION_POST_DIARY
            reason = "post"

        tags = diary_store.get_active_tags(session, tag_ids)
        if len(tags) != len(tag_ids):
            raise DiaryValidationError("Tag does not exist or is disabled")

        diary = Diary(
            parent_id=parent_id,
            category_id=category_id,
            staff_id=staff_id,
            title=title[:200],
            content=content,
            target_date=target_date,
            is_urgent=is_urgent,
            deadline=deadline,
            bounty_points=bounty_points,
            current_status=STATUS_UNREAD,
        )
        session.add(diary)
        session.flush()
        diary_store.link_diary_tags(session, diary.id, tag_ids)

        points = points_for_action(action)
        diary_store.insert_action_log(session, diary.id, staff_id, action, points)
        award_points(session, staff_id, points, reason, diary.id)
        logging.info("Diary %s created by staff=%s (parent=%s)", diary.id, staff_id, parent_id)

        session.refresh(diary)
        return diary_to_dict(diary)


def list_diaries_by_date(
    target_date: object, viewer_id: Optional[int] = None, include_hidden: bool = False
) -> List[Dict[str, object]]:
    """Top-level diaries for a date, newest first, with replies and user statuses."""
    day = _parse_date(target_date, "date", required=True)
    with diary_store.store_session() as session:
        query = (
            session.query(Diary)
            .options(
                selectinload(Diary.replies).selectinload(Diary.tags),
                selectinload(Diary.tags),
                selectinload(Diary.user_statuses).selectinload(UserDiaryStatus.staff),
            )
            .filter(
                Diary.target_date == day,
                Diary.parent_id.is_(None),
                Diary.is_deleted.is_(False),
            )
        )
        if not include_hidden:
            query = query.filter(Diary.is_hidden.is_(False))
        diaries = query.order_by(Diary.created_at.desc(), Diary.id.desc()).all()

        directory, jobs = _mention_directory(session) if viewer_id is not None else ([], [])
        return [_with_viewer(diary_to_dict(d), d, viewer_id, directory, jobs) for d in diaries]


def get_diary(diary_id: int, viewer_id: Optional[int] = None) -> Dict[str, object]:
    with diary_store.store_session() as session:
        diary = _load_diary(session, diary_id)
        directory, jobs = _mention_directory(session) if viewer_id is not None else ([], [])
        return _with_viewer(diary_to_dict(diary), diary, viewer_id, directory, jobs)


def update_diary(staff_id: int, diary_id: int, payload: Dict[str, object]) -> Dict[str, object]:
    """Edit a diary. Date and category may only change on a top-level diary and cascade to replies."""
    if not isinstance(payload, dict):
        raise DiaryValidationError("Request body must be a JSON object")

    with diary_store.store_session(commit_on_success=True) as session:
        diary = _load_diary(session, diary_id)
        _require_editor(session, staff_id, diary)

        if diary.is_reply and ("category_id" in payload or "target_date" in payload):
            raise DiaryValidationError("A reply always follows its parent's date and category")

        if "title" in payload:
            diary.title = _normalize_text(payload.get("title"), "title", max_length=200)
        if "content" in payload:
            diary.content = _normalize_text(payload.get("content"), "content")
        if "is_urgent" in payload:
            diary.is_urgent = _parse_bool(payload.get("is_urgent"))
        if "deadline" in payload:
            diary.deadline = _parse_date(payload.get("deadline"), "deadline")
        if "category_id" in payload:
            diary.category_id = _active_category(session, _parse_id(payload.get("category_id"), "category_id")).id
        if "target_date" in payload:
            diary.target_date = _parse_date(payload.get("target_date"), "target_date", required=True)

        # 回复的日期和分类始终与父日报一致
        for reply in diary.replies:
            reply.category_id = diary.category_id
            reply.target_date = diary.target_date

        diary.edited_by = staff_id
        diary.edited_at = utcnow()
        session.flush()
        session.refresh(diary)
        return diary_to_dict(diary)


def delete_diary(staff_id: int, diary_id: int) -> Dict[str, object]:
    """Soft delete; a parent takes its replies with it. Points already paid stay."""
    with diary_store.store_session(commit_on_success=True) as session:
        diary = _load_diary(session, diary_id)
        _require_editor(session, staff_id, diary)
        diary.is_deleted = True
        for reply in diary.replies:
            reply.is_deleted = True
        logging.info("Diary %s soft-deleted by staff=%s", diary_id, staff_id)
        return {"deleted": True, "id": diary_id}


def set_hidden(staff_id: int, diary_id: int, hidden: object) -> Dict[str, object]:
    with diary_store.store_session(commit_on_success=True) as session:
        staff = session.get(Staff, staff_id)
        if not staff or not staff.is_admin:
            raise DiaryPermissionError("Admin access required")
        diary = _load_diary(session, diary_id)
        diary.is_hidden = _parse_bool(hidden)
        session.flush()
        return {"id": diary.id, "is_hidden": diary.is_hidden}


def list_upcoming_deadlines(days: object = 7, now: Optional[datetime] = None, tz=None) -> List[Dict[str, object]]:
    """Unsolved top-level diaries due within ``days`` local days; overdue ones are included and flagged."""
    try:
        window = int(days)
    except (TypeError, ValueError) as exc:
        raise DiaryValidationError("days must be an integer") from exc
    if window < 0:
        raise DiaryValidationError("days must not be negative")

    today = local_now(now, tz or Config.LOCAL_TZ).date()
    horizon = today + timedelta(days=window)
    with diary_store.store_session() as session:
        diaries = (
            session.query(Diary)
            .filter(
                Diary.parent_id.is_(None),
                Diary.is_deleted.is_(False),
                Diary.deadline.isnot(None),
                Diary.deadline <= horizon,
                Diary.current_status != STATUS_SOLVED,
            )
            .order_by(Diary.deadline.asc(), Diary.id.asc())
            .all()
        )
        result = []
        for diary in diaries:
            payload = diary_to_dict(diary, include_replies=False)
            payload["is_overdue"] = diary.deadline < today
            result.append(payload)
        return result
