"""Session-scoped data access used by the status engine and the ranking.

Each helper takes an open SQLAlchemy session and never commits; the caller
owns the transaction boundary.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.db import SessionLocal
from ..models.base import utcnow
from ..models.diary import Diary
from ..models.staff import Staff
from ..models.user_diary_status import UserDiaryStatus
from ..models.action_log import ActionLog
from ..models.point_log import PointLog
from ..models.tag import Tag
from ..models.diary_tag import DiaryTag


@contextmanager
def store_session(commit_on_success: bool = False) -> Generator[Session, None, None]:
    """Yield a session that rolls back on any error and always closes."""
    session = SessionLocal()
    try:
        yield session
        if commit_on_success:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def lock_diary(session: Session, diary_id: int) -> Optional[Diary]:
    # SELECT ... FOR UPDATE 串行化同一日报上的状态切换
    return (
        session.query(Diary)
        .filter(Diary.id == diary_id)
        .with_for_update()
        .first()
    )


def get_diary_statuses(session: Session, diary_id: int) -> List[UserDiaryStatus]:
    return (
        session.query(UserDiaryStatus)
        .filter(UserDiaryStatus.diary_id == diary_id)
        .order_by(UserDiaryStatus.updated_at, UserDiaryStatus.id)
        .all()
    )


def get_user_diary_status(session: Session, diary_id: int, staff_id: int) -> Optional[UserDiaryStatus]:
    return (
        session.query(UserDiaryStatus)
        .filter(UserDiaryStatus.diary_id == diary_id, UserDiaryStatus.staff_id == staff_id)
        .with_for_update()
        .first()
    )


def upsert_user_diary_status(session: Session, diary_id: int, staff_id: int, status: str) -> UserDiaryStatus:
    row = get_user_diary_status(session, diary_id, staff_id)
    if row is None:
        row = UserDiaryStatus(diary_id=diary_id, staff_id=staff_id, status=status, updated_at=utcnow())
        session.add(row)
    else:
        row.status = status
        row.updated_at = utcnow()
    session.flush()
    return row


def get_action_log(session: Session, diary_id: Optional[int], staff_id: int, action_type: str) -> Optional[ActionLog]:
    return (
        session.query(ActionLog)
        .filter(
            ActionLog.diary_id == diary_id,
            ActionLog.staff_id == staff_id,
            ActionLog.action_type == action_type,
        )
        .first()
    )


def insert_action_log(
    session: Session, diary_id: Optional[int], staff_id: int, action_type: str, points_awarded: int
) -> ActionLog:
    log = ActionLog(
        diary_id=diary_id,
        staff_id=staff_id,
        action_type=action_type,
        points_awarded=points_awarded,
        created_at=utcnow(),
    )
    session.add(log)
    # flush 触发唯一约束，重复发放会在这里抛出 IntegrityError
    session.flush()
    return log


def delete_action_log(session: Session, log_id: int) -> None:
    session.query(ActionLog).filter(ActionLog.id == log_id).delete(synchronize_session=False)
    session.flush()


def get_active_tags(session: Session, tag_ids: List[int]) -> List[Tag]:
    if not tag_ids:
        return []
    return (
        session.query(Tag)
        .filter(Tag.id.in_(tag_ids), Tag.is_active.is_(True))
        .order_by(Tag.id)
        .all()
    )


def link_diary_tags(session: Session, diary_id: int, tag_ids: List[int]) -> None:
    for tag_id in tag_ids:
        session.add(DiaryTag(diary_id=diary_id, tag_id=tag_id))
    session.flush()


def append_point_log(
    session: Session, staff_id: int, amount: int, reason: str, diary_id: Optional[int] = None
) -> PointLog:
    entry = PointLog(staff_id=staff_id, amount=amount, reason=reason, diary_id=diary_id, created_at=utcnow())
    session.add(entry)
    session.flush()
    return entry


def increment_staff_points(session: Session, staff_id: int, delta: int) -> None:
    # 用 SQL 表达式自增，避免读-改-写
    session.execute(
        update(Staff)
        .where(Staff.id == staff_id)
        .values(current_points=Staff.current_points + delta)
        .execution_options(synchronize_session="fetch")
    )


def get_staff_current_points(session: Session, staff_id: int) -> int:
    value = session.query(Staff.current_points).filter(Staff.id == staff_id).scalar()
    return int(value or 0)


def query_action_logs(
    session: Session,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    category_id: Optional[int] = None,
) -> List[tuple]:
    """Return (staff_id, points_awarded, created_at) rows, optionally joined to a diary category."""
    query = session.query(ActionLog.staff_id, ActionLog.points_awarded, ActionLog.created_at)
    if category_id is not None:
        # 内连接：没有日报的记录不会出现在分类排行中
        query = query.join(Diary, Diary.id == ActionLog.diary_id).filter(Diary.category_id == category_id)
    if date_from is not None:
        query = query.filter(ActionLog.created_at >= date_from)
    if date_to is not None:
        query = query.filter(ActionLog.created_at < date_to)
    return query.order_by(ActionLog.id).all()


def query_point_logs(
    session: Session, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
) -> List[tuple]:
    """Return (staff_id, amount, created_at) rows within the optional range."""
    query = session.query(PointLog.staff_id, PointLog.amount, PointLog.created_at)
    if date_from is not None:
        query = query.filter(PointLog.created_at >= date_from)
    if date_to is not None:
        query = query.filter(PointLog.created_at < date_to)
    return query.order_by(PointLog.id).all()


def update_diary_aggregate_status(
    session: Session,
    diary: Diary,
    status: str,
    solved_by: Optional[int] = None,
    solved_at: Optional[datetime] = None,
) -> Diary:
    diary.current_status = status
    diary.solved_by = solved_by
    diary.solved_at = solved_at
    session.flush()
    return diary
