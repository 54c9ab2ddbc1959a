"""Domain exceptions and the JSON error envelope shared by every API route."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from .jinja import get_templates

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Base class for errors raised by the inventory domain layer."""

    code = "inventory_error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInput(InventoryError, ValueError):
    code = "invalid_input"


class QuantityError(InvalidInput):
    """A counted or expected quantity is negative, non-numeric or out of range."""

    code = "invalid_quantity"


class CatalogError(InvalidInput):
    code = "catalog_error"


class AssignmentError(InvalidInput):
    code = "assignment_error"


class MissingVarianceNotes(InvalidInput):
    """Raised when a monthly snapshot has non-zero deltas without an explanation."""

    code = "notes_required"

    def __init__(self, item_ids: Iterable[int]) -> None:
        ids = sorted(item_ids)
        super().__init__(
            f"{len(ids)} item(s) changed since the previous period and need a note",
            details={"item_ids": ids},
        )
        self.item_ids = ids


class AccessDenied(InventoryError, PermissionError):
    code = "forbidden"


class NotFound(InventoryError, LookupError):
    code = "not_found"


class AuthenticationFailed(InventoryError):
    code = "authentication_failed"


class AccountLocked(AuthenticationFailed):
    code = "account_locked"


_STATUS_BY_TYPE: tuple[tuple[type[InventoryError], int], ...] = (
    (AccountLocked, status.HTTP_423_LOCKED),
    (AuthenticationFailed, status.HTTP_401_UNAUTHORIZED),
    (AccessDenied, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidInput, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: InventoryError) -> int:
    for exc_type, code in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    path = request.url.path
    return "text/html" in accept and not path.startswith("/api") and not path.startswith("/login")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_401_UNAUTHORIZED and _wants_html(request):
        return RedirectResponse(url=f"/login?next={request.url.path}", status_code=302)
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": exc.errors()},
    )


async def inventory_exception_handler(request: Request, exc: InventoryError):
    if _wants_html(request):
        return get_templates().TemplateResponse(
            request,
            "error.html",
            {"user": getattr(request.state, "user", None), "error": exc.message, "details": exc.details},
            status_code=status_for(exc),
        )
    return ErrorEnvelope(
        status_code=status_for(exc),
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def store_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("store.error", extra={"extra_data": {"path": request.url.path}})
    return ErrorEnvelope(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="store_error",
        message="The inventory store could not complete the request",
        details={"error": exc.__class__.__name__},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InventoryError, inventory_exception_handler)
    app.add_exception_handler(SQLAlchemyError, store_exception_handler)
