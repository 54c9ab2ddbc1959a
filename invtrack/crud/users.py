"""User administration with role-based restrictions.

* super_admin manages everyone, super admins have no department.
* admin manages only standard/admin users of their own department and can
  never create or touch a super admin.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.dates import utcnow_iso
from ..core.errors import AccessDenied, InvalidInput, NotFound
from ..core.security import hash_password
from ..models.department import Department
from ..models.record import Record
from ..models.spot import SpotInventory
from ..models.user import ROLE_STANDARD, ROLE_SUPER_ADMIN, ROLES, User


def list_users(db: Session, actor: User) -> list[User]:
    stmt = select(User).order_by(User.username)
    if not actor.is_super_admin:
        stmt = stmt.where(User.department_id == actor.department_id)
    return db.execute(stmt).scalars().all()


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(select(User).where(User.username == username)).scalars().first()


def _ensure_manageable(actor: User, target: User) -> None:
    if actor.is_super_admin:
        return
    if not actor.is_admin:
        raise AccessDenied("Only administrators can manage users")
    if target.is_super_admin:
        raise AccessDenied("Admins cannot modify super admins")
    if target.department_id != actor.department_id:
        raise AccessDenied("User belongs to another department")


def _resolve_role(actor: User, requested: str | None) -> str:
    role = (requested or ROLE_STANDARD).strip()
    if role not in ROLES:
        raise InvalidInput(f"unknown role: {role}")
    if role == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        return ROLE_STANDARD
    return role


def _resolve_department(db: Session, actor: User, role: str, requested: int | None) -> int | None:
    if role == ROLE_SUPER_ADMIN:
        return None
    if not actor.is_super_admin:
        return actor.department_id
    if requested is None:
        raise InvalidInput("department is required for this role")
    if db.get(Department, requested) is None:
        raise InvalidInput("department does not exist")
    return requested


def _check_password(password: str) -> str:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise InvalidInput(f"password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
    return password


def _check_username(db: Session, username: str | None, user_id: int | None = None) -> str:
    name = (username or "").strip()
    if not name:
        raise InvalidInput("username is required")
    existing = get_user_by_username(db, name)
    if existing is not None and existing.id != user_id:
        raise InvalidInput("username is already taken")
    return name


def create_user(db: Session, actor: User, payload: dict) -> User:
    if not actor.is_admin:
        raise AccessDenied("Only administrators can manage users")
    username = _check_username(db, payload.get("username"))
    password = _check_password(payload.get("password") or "")
    role = _resolve_role(actor, payload.get("role"))
    user = User(
        username=username,
        password=hash_password(password),
        role=role,
        department_id=_resolve_department(db, actor, role, payload.get("department_id")),
        failed_attempts=0,
        created_at=utcnow_iso(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidInput("username is already taken") from exc
    db.refresh(user)
    return user


def update_user(db: Session, actor: User, user: User, payload: dict) -> User:
    _ensure_manageable(actor, user)
    username = _check_username(db, payload["username"], user.id) if payload.get("username") else user.username
    role = _resolve_role(actor, payload.get("role") or user.role)
    if actor.is_super_admin:
        requested_dept = payload.get("department_id", user.department_id)
    else:
        requested_dept = actor.department_id
    department_id = _resolve_department(db, actor, role, requested_dept)
    password = payload.get("password") or ""
    if password:
        user.password = hash_password(_check_password(password))
    user.username = username
    user.role = role
    user.department_id = department_id
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidInput("username is already taken") from exc
    db.refresh(user)
    return user


def delete_user(db: Session, actor: User, user: User) -> None:
    _ensure_manageable(actor, user)
    if user.id == actor.id:
        raise InvalidInput("You cannot delete your own account")
    try:
        # Submitted counts outlive the account.
        for model in (Record, SpotInventory):
            db.execute(update(model).where(model.user_id == user.id).values(user_id=None))
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        raise
