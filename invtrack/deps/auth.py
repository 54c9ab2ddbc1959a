from __future__ import annotations

import time

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.security import decode_token
from ..crud.users import get_user_by_username
from ..db.session import get_db
from ..middlewares import principal_ctx_var
from ..models.user import User
from ..services.access import ensure_admin, ensure_super_admin

SESSION_USER_KEY = "user_id"
SESSION_SEEN_KEY = "last_seen"


def _unauthorized(detail: str = "Authorization required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def start_session(request: Request, user: User) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    request.session[SESSION_SEEN_KEY] = int(time.time())


def end_session(request: Request) -> None:
    request.session.clear()


def session_user(request: Request, db: Session) -> User | None:
    """User of the browser session, or ``None`` when absent or idle too long.

    Every authenticated request refreshes the last-activity stamp.
    """

    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        return None
    now = int(time.time())
    last_seen = int(request.session.get(SESSION_SEEN_KEY) or 0)
    if now - last_seen > settings.SESSION_IDLE_MINUTES * 60:
        end_session(request)
        request.state.session_expired = True
        return None
    user = db.get(User, user_id)
    if user is None:
        end_session(request)
        return None
    request.session[SESSION_SEEN_KEY] = now
    return user


def token_user(authorization: str | None, db: Session) -> User | None:
    if not authorization:
        return None
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        return None
    try:
        payload = decode_token(credentials, verify_type="access")
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc
    user = get_user_by_username(db, payload.sub)
    if user is None:
        raise _unauthorized("Unknown token subject")
    return user


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> User:
    user = session_user(request, db)
    scheme = "session"
    if user is None:
        user = token_user(authorization, db)
        scheme = "jwt"
    if user is None:
        raise _unauthorized("Login required")
    _set_principal(request, f"{scheme}:{user.username}")
    request.state.user = user
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    ensure_admin(user)
    return user


async def require_super_admin(user: User = Depends(require_user)) -> User:
    ensure_super_admin(user)
    return user
