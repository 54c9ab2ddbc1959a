"""Application factory and top-level wiring for the inventory tracker.

Configuration, database setup, middleware, routers and error handling are
brought together here. Importing the package yields a ready ``app``; the
``main`` module adds logging and metrics on top for the served process.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from .core.config import settings
from .core.errors import register_exception_handlers
from .db.migrate import run_migrations
from .db.session import Base, SessionLocal, engine
from .middlewares import RequestContextMiddleware, SecurityHeadersMiddleware
from .services.accounts import ensure_bootstrap_admin

# Importing the models registers every table on ``Base.metadata``.
from . import models as _models  # noqa: F401

# ---------- App init ----------
app = FastAPI(title=settings.APP_NAME)

app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

# ---------- DB init/migrations ----------
# ``create_all`` covers fresh databases; ``run_migrations`` upgrades older ones.
Base.metadata.create_all(bind=engine)
run_migrations(engine)
with SessionLocal() as _db:
    ensure_bootstrap_admin(_db)

# ---------- Middleware ----------
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.APP_SECRET,
    session_cookie=settings.SESSION_COOKIE_NAME,
    max_age=settings.SESSION_MAX_AGE,
    same_site="lax",
    https_only=False,  # set True once the app is always accessed via HTTPS at the edge
)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
# Added last so it wraps everything and every log line carries the request id.
app.add_middleware(RequestContextMiddleware)

# ---------- Routers ----------
# UI login routes (no session required)
from .routers import auth_ui as auth_ui_router  # noqa: E402

app.include_router(auth_ui_router.router)

# UI pages/actions (session required via router dependency)
from .routers import ui as ui_router  # noqa: E402

app.include_router(ui_router.router)

# APIs (session cookie or bearer token)
from .routers import api_auth as api_auth_router  # noqa: E402
from .routers import api_catalog as api_catalog_router  # noqa: E402
from .routers import api_inventory as api_inventory_router  # noqa: E402
from .routers import api_monthly as api_monthly_router  # noqa: E402
from .routers import api_records as api_records_router  # noqa: E402
from .routers import api_users as api_users_router  # noqa: E402

app.include_router(api_auth_router.router)
app.include_router(api_catalog_router.router)
app.include_router(api_users_router.router)
app.include_router(api_records_router.router)
app.include_router(api_inventory_router.router)
app.include_router(api_monthly_router.router)

# ---------- Exception handling ----------
register_exception_handlers(app)

__all__ = ["app"]
