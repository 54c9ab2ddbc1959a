from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.errors import AuthenticationFailed, InvalidInput, status_for
from ..core.jinja import get_templates
from ..db.session import get_db
from ..deps.auth import end_session, require_user, session_user, start_session
from ..models.user import User
from ..services.accounts import authenticate, change_password

router = APIRouter()
templates = get_templates()


def _safe_next(target: str | None) -> str:
    if not target or not target.startswith("/") or target.startswith("//"):
        return "/"
    return target


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = "/", db: Session = Depends(get_db)):
    if session_user(request, db) is not None:
        return RedirectResponse(url=_safe_next(next), status_code=302)
    expired = bool(getattr(request.state, "session_expired", False))
    return templates.TemplateResponse(
        request,
        "login.html",
        {"next": _safe_next(next), "error": "", "expired": expired},
    )


@router.post("/login", response_class=HTMLResponse)
def login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: str = Form("/"),
    db: Session = Depends(get_db),
):
    try:
        user = authenticate(db, username, password)
    except AuthenticationFailed as exc:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"next": _safe_next(next), "error": exc.message, "expired": False, "username": username},
            status_code=status_for(exc),
        )
    start_session(request, user)
    return RedirectResponse(url=_safe_next(next), status_code=302)


@router.get("/logout")
def logout(request: Request):
    end_session(request)
    return RedirectResponse(url="/login", status_code=302)


@router.get("/account/password", response_class=HTMLResponse)
def password_page(request: Request, user: User = Depends(require_user)):
    return templates.TemplateResponse(request, "password.html", {"user": user, "error": "", "message": ""})


@router.post("/account/password", response_class=HTMLResponse)
def password_submit(
    request: Request,
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        change_password(db, user, current_password, new_password, confirm_password)
    except InvalidInput as exc:
        return templates.TemplateResponse(
            request,
            "password.html",
            {"user": user, "error": exc.message, "message": ""},
            status_code=422,
        )
    return templates.TemplateResponse(
        request,
        "password.html",
        {"user": user, "error": "", "message": "Password updated."},
    )
