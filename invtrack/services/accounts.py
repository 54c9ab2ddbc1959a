"""Login, lockout and password changes.

After ``LOGIN_MAX_FAILED_ATTEMPTS`` consecutive failures an account is locked
for ``LOGIN_LOCKOUT_MINUTES``. A successful login clears the counter and
upgrades any password still stored in plaintext to a bcrypt hash.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.dates import utcnow_iso
from ..core.errors import AccountLocked, AuthenticationFailed, InvalidInput
from ..core.logging import log_event
from ..core.security import hash_password, is_password_hash, verify_password
from ..crud.users import get_user_by_username
from ..models.user import ROLE_SUPER_ADMIN, User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_stamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def lock_remaining(user: User, now: datetime | None = None) -> int:
    """Seconds left on the user's lock, 0 when not locked."""

    until = _parse_stamp(user.locked_until)
    if until is None:
        return 0
    remaining = (until - (now or _now())).total_seconds()
    return max(0, int(remaining))


def _register_failure(db: Session, user: User) -> None:
    user.failed_attempts = (user.failed_attempts or 0) + 1
    if user.failed_attempts >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
        until = _now() + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
        user.locked_until = until.isoformat(timespec="seconds").replace("+00:00", "Z")
        user.failed_attempts = 0
        log_event(logger, "login.locked", username=user.username, locked_until=user.locked_until)
    db.commit()


def authenticate(db: Session, username: str, password: str) -> User:
    """Return the user for valid credentials or raise.

    Raises ``AccountLocked`` while a lock is active (even for a correct
    password) and ``AuthenticationFailed`` otherwise.
    """

    name = (username or "").strip()
    user = get_user_by_username(db, name) if name else None
    if user is None:
        log_event(logger, "login.failed", username=name, reason="unknown_user")
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    remaining = lock_remaining(user)
    if remaining:
        log_event(logger, "login.failed", username=name, reason="locked")
        raise AccountLocked(
            "Account temporarily locked after too many failed attempts",
            details={"retry_after": remaining},
        )

    if not verify_password(password or "", user.password):
        _register_failure(db, user)
        log_event(logger, "login.failed", username=name, reason="bad_password", attempts=user.failed_attempts)
        if lock_remaining(user):
            raise AccountLocked(
                "Account temporarily locked after too many failed attempts",
                details={"retry_after": lock_remaining(user)},
            )
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    user.failed_attempts = 0
    user.locked_until = None
    if not is_password_hash(user.password):
        user.password = hash_password(password)
        log_event(logger, "login.password_rehashed", username=name)
    db.commit()
    db.refresh(user)
    log_event(logger, "login.succeeded", username=name, role=user.role)
    return user


def change_password(db: Session, user: User, current: str, new: str, confirm: str) -> User:
    if not verify_password(current or "", user.password):
        raise InvalidInput("Current password is incorrect")
    if (new or "") != (confirm or ""):
        raise InvalidInput("New passwords do not match")
    if len(new or "") < settings.PASSWORD_MIN_LENGTH:
        raise InvalidInput(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
    user.password = hash_password(new)
    db.commit()
    db.refresh(user)
    log_event(logger, "password.changed", user_id=user.id)
    return user


def ensure_bootstrap_admin(db: Session) -> User | None:
    """Create the first super admin from ``UI_USERNAME`` when no account exists.

    ``UI_PASSWORD_HASH`` wins over ``UI_PASSWORD`` when both are set.
    """

    if db.query(User.id).first() is not None:
        return None
    stored = (settings.UI_PASSWORD_HASH or "").strip()
    if not is_password_hash(stored):
        stored = hash_password(settings.UI_PASSWORD)
    user = User(
        username=settings.UI_USERNAME,
        password=stored,
        role=ROLE_SUPER_ADMIN,
        department_id=None,
        failed_attempts=0,
        created_at=utcnow_iso(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log_event(logger, "account.bootstrapped", username=user.username)
    return user
