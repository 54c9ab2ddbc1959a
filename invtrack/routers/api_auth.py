from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.security import decode_token, issue_token_pair
from ..crud.users import get_user_by_username
from ..db.session import get_db
from ..deps.auth import require_user
from ..models.user import User
from ..schemas.auth import RefreshRequest, TokenRequest, TokenResponse
from ..schemas.users import PasswordChange, UserOut
from ..services.accounts import authenticate, change_password

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _pair_for(user: User) -> TokenResponse:
    return issue_token_pair(user.username, role=user.role, department_id=user.department_id)


@router.post("/token", response_model=TokenResponse, summary="Exchange credentials for JWTs")
def exchange_token(payload: TokenRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.username, payload.password)
    return _pair_for(user)


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token, verify_type="refresh")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    user = get_user_by_username(db, claims.sub)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown token subject")
    return _pair_for(user)


@router.get("/me", response_model=UserOut)
def whoami(user: User = Depends(require_user)):
    return user


@router.post("/password")
def api_change_password(
    payload: PasswordChange,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    change_password(db, user, payload.current_password, payload.new_password, payload.confirm_password)
    return {"status": "updated"}
