"""Staff registration, approval, profile and role management."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from ..models.staff import Staff, ROLE_ADMIN, ROLE_MEMBER
from ..models.job_type import JobType
from ..models.category import Category
from ..models.tag import Tag
from ..utils import category_to_dict, job_type_to_dict, tag_to_dict
from . import diary_store

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


class StaffServiceError(Exception):
    """Base exception for staff service failures."""


class StaffValidationError(StaffServiceError):
    """Raised when payloads are missing required fields or credentials are wrong."""


class StaffNotFoundError(StaffServiceError):
    """Raised when a staff member cannot be found."""


class StaffPermissionError(StaffServiceError):
    """Raised when a non-admin calls an admin operation."""


class DuplicateStaffError(StaffServiceError):
    """Raised when the login id or e-mail is already registered."""


class InactiveStaffError(StaffServiceError):
    """Raised when an account that is still awaiting approval tries to sign in."""


def _required(payload: Dict[str, object], key: str) -> str:
    value = payload.get(key)
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise StaffValidationError(f"{key} is required")
    return text


def _validate_email(email: str) -> str:
    if not EMAIL_PATTERN.match(email):
        raise StaffValidationError("email is not valid")
    return email.lower()


def _validate_password(password: object) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise StaffValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _job_type_id(session, value: object) -> int:
    try:
        job_type_id = int(value)
    except (TypeError, ValueError) as exc:
        raise StaffValidationError("job_type_id must be an integer") from exc
    job_type = session.get(JobType, job_type_id)
    if not job_type or not job_type.is_active:
        raise StaffValidationError("Job type does not exist")
    return job_type.id


def _require_admin(session, admin_id: int) -> Staff:
    admin = session.get(Staff, admin_id)
    if not admin or not admin.is_admin or not admin.is_active:
        raise StaffPermissionError("Admin access required")
    return admin


def _get_staff(session, staff_id: int) -> Staff:
    staff = session.get(Staff, staff_id)
    if not staff:
        raise StaffNotFoundError("Staff not found")
    return staff


def register_staff(payload: Dict[str, object]) -> Dict[str, object]:
    """Create an inactive member account that waits for admin approval."""
    if not isinstance(payload, dict):
        raise StaffValidationError("Request body must be a JSON object")
    name = _required(payload, "name")
    login_id = _required(payload, "login_id")
    email = _validate_email(_required(payload, "email"))
    password = _validate_password(payload.get("password"))

    with diary_store.store_session(commit_on_success=True) as session:
        job_type_id = _job_type_id(session, payload.get("job_type_id"))
        if session.query(Staff).filter(Staff.login_id == login_id).first():
            raise DuplicateStaffError("Login ID already exists")
        if session.query(Staff).filter(Staff.email == email).first():
            raise DuplicateStaffError("Email already registered")

        staff = Staff(
            name=name,
            login_id=login_id,
            email=email,
            password_hash=generate_password_hash(password),
            role=ROLE_MEMBER,
            job_type_id=job_type_id,
            is_active=False,
            current_points=0,
        )
        session.add(staff)
        session.flush()
        logging.info("Staff %s registered, awaiting approval", staff.id)
        return staff.to_dict()


def authenticate(login_id: Optional[str], password: Optional[str]) -> Dict[str, object]:
    if not login_id or not password:
        raise StaffValidationError("login_id and password are required")
    with diary_store.store_session() as session:
        staff = session.query(Staff).filter(Staff.login_id == login_id).first()
        if not staff or not check_password_hash(staff.password_hash, password):
            raise StaffValidationError("Invalid login ID or password")
        if not staff.is_active:
            raise InactiveStaffError("Account is awaiting administrator approval")
        return staff.to_dict()


def get_staff(staff_id: int) -> Dict[str, object]:
    with diary_store.store_session() as session:
        return _get_staff(session, staff_id).to_dict()


def list_active_staff() -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        rows = session.query(Staff).filter(Staff.is_active.is_(True)).order_by(Staff.name.asc()).all()
        return [s.to_dict() for s in rows]


def list_pending_staff(admin_id: int) -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        _require_admin(session, admin_id)
        rows = (
            session.query(Staff)
            .filter(Staff.is_active.is_(False))
            .order_by(Staff.created_at.desc(), Staff.id.desc())
            .all()
        )
        return [s.to_dict() for s in rows]


def approve_staff(admin_id: int, staff_id: int) -> Dict[str, object]:
    with diary_store.store_session(commit_on_success=True) as session:
        _require_admin(session, admin_id)
        staff = _get_staff(session, staff_id)
        staff.is_active = True
        session.flush()
        logging.info("Staff %s approved by admin %s", staff_id, admin_id)
        return staff.to_dict()


def update_profile(staff_id: int, payload: Dict[str, object]) -> Dict[str, object]:
    if not isinstance(payload, dict):
        raise StaffValidationError("Request body must be a JSON object")
    with diary_store.store_session(commit_on_success=True) as session:
        staff = _get_staff(session, staff_id)
        if payload.get("name") is not None:
            staff.name = _required(payload, "name")
        if payload.get("email") is not None:
            email = _validate_email(_required(payload, "email"))
            taken = session.query(Staff).filter(Staff.email == email, Staff.id != staff_id).first()
            if taken:
                raise DuplicateStaffError("Email already registered")
            staff.email = email
        session.flush()
        return staff.to_dict()


def change_password(staff_id: int, current_password: Optional[str], new_password: Optional[str]) -> Dict[str, object]:
    new_password = _validate_password(new_password)
    with diary_store.store_session(commit_on_success=True) as session:
        staff = _get_staff(session, staff_id)
        if not current_password or not check_password_hash(staff.password_hash, current_password):
            raise StaffValidationError("Current password is incorrect")
        staff.password_hash = generate_password_hash(new_password)
        return {"updated": True}


def update_staff_by_admin(admin_id: int, staff_id: int, payload: Dict[str, object]) -> Dict[str, object]:
    """Change a staff member's job type and/or role."""
    if not isinstance(payload, dict):
        raise StaffValidationError("Request body must be a JSON object")
    with diary_store.store_session(commit_on_success=True) as session:
        _require_admin(session, admin_id)
        staff = _get_staff(session, staff_id)
        if "job_type_id" in payload:
            staff.job_type_id = _job_type_id(session, payload.get("job_type_id"))
        if "role" in payload:
            role = payload.get("role")
            if role not in (ROLE_ADMIN, ROLE_MEMBER):
                raise StaffValidationError("role must be admin or member")
            if staff_id == admin_id and role != ROLE_ADMIN:
                raise StaffValidationError("Administrators cannot demote themselves")
            staff.role = role
        session.flush()
        return staff.to_dict()


def list_job_types() -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        rows = session.query(JobType).filter(JobType.is_active.is_(True)).order_by(JobType.id).all()
        return [job_type_to_dict(j) for j in rows]


def list_categories() -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        rows = (
            session.query(Category)
            .filter(Category.is_active.is_(True))
            .order_by(Category.sort_order, Category.id)
            .all()
        )
        return [category_to_dict(c) for c in rows]


def list_tags() -> List[Dict[str, object]]:
    with diary_store.store_session() as session:
        rows = session.query(Tag).filter(Tag.is_active.is_(True)).order_by(Tag.id).all()
        return [tag_to_dict(t) for t in rows]
