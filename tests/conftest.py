"""
测试夹具：使用临时 SQLite 数据库，每个测试前重建表结构
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="clinic-diary-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["APP_UTC_OFFSET_HOURS"] = "0"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-with-enough-length"
os.environ["ADMIN_PASSWORD"] = "admin123"

from datetime import date  # noqa: E402

import pytest  # noqa: E402

from backend.src.models.db import SessionLocal, drop_db, init_db  # noqa: E402
from backend.src.models import (  # noqa: E402
    ActionLog,
    Category,
    Diary,
    JobType,
    PointLog,
    Staff,
    Tag,
)
from backend.src.models.staff import ROLE_ADMIN, ROLE_MEMBER  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    drop_db()
    init_db()
    yield
    drop_db()


@pytest.fixture
def session():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_job_type(session):
    def factory(name="Nurse", is_active=True):
        job = JobType(name=name, is_active=is_active)
        session.add(job)
        session.commit()
        return job.id
    return factory


@pytest.fixture
def make_category(session):
    def factory(name="Nursing", sort_order=0, is_active=True):
        category = Category(name=name, sort_order=sort_order, is_active=is_active)
        session.add(category)
        session.commit()
        return category.id
    return factory


@pytest.fixture
def make_tag(session):
    def factory(name="Medication", css_class="tag-medication", is_active=True):
        tag = Tag(name=name, css_class=css_class, is_active=is_active)
        session.add(tag)
        session.commit()
        return tag.id
    return factory


@pytest.fixture
def make_staff(session):
    counter = {"n": 0}

    def factory(name=None, job_type_id=None, is_active=True, admin=False, points=0):
        counter["n"] += 1
        n = counter["n"]
        staff = Staff(
            name=name or f"Staff {n}",
            login_id=f"staff{n}",
            email=f"staff{n}@clinic.test",
            password_hash="not-used",
            role=ROLE_ADMIN if admin else ROLE_MEMBER,
            job_type_id=job_type_id,
            is_active=is_active,
            current_points=points,
        )
        session.add(staff)
        session.commit()
        return staff.id
    return factory


@pytest.fixture
def make_diary(session):
    """Insert a diary row directly (no points paid)."""
    def factory(staff_id, category_id, title="Handoff", content="Please check", target_date=date(2024, 1, 10),
                parent_id=None, deadline=None):
        diary = Diary(
            staff_id=staff_id,
            category_id=category_id,
            title=title,
            content=content,
            target_date=target_date,
            parent_id=parent_id,
            deadline=deadline,
        )
        session.add(diary)
        session.commit()
        return diary.id
    return factory


@pytest.fixture
def add_point_log(session):
    def factory(staff_id, amount, created_at, reason="test", diary_id=None):
        session.add(PointLog(staff_id=staff_id, amount=amount, reason=reason, diary_id=diary_id, created_at=created_at))
        session.commit()
    return factory


@pytest.fixture
def add_action_log(session):
    def factory(staff_id, diary_id, action_type, points, created_at):
        session.add(ActionLog(
            staff_id=staff_id, diary_id=diary_id, action_type=action_type,
            points_awarded=points, created_at=created_at,
        ))
        session.commit()
    return factory
