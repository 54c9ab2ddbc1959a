from __future__ import annotations

import logging
import re
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal", default=None)
logger = logging.getLogger("invtrack.request")

REQUEST_ID_HEADER = "X-Request-ID"
# Probes and static assets would drown the request log.
_QUIET_PREFIXES = ("/static", "/health", "/metrics")
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER, "")
    if _VALID_REQUEST_ID.match(supplied):
        return supplied
    return uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id and the acting user to every log line of a request.

    The auth dependencies fill in the principal on ``request.state``; it is
    read back once the response is ready so the request log names the user.
    Unhandled exceptions are logged as ``request.failed`` and re-raised.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        id_token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request.failed", extra={"extra_data": self._summary(request, 500, started)})
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            if not request.url.path.startswith(_QUIET_PREFIXES):
                logger.info(
                    "request.completed",
                    extra={"extra_data": self._summary(request, response.status_code, started)},
                )
            return response
        finally:
            request_id_ctx_var.reset(id_token)
            principal_ctx_var.reset(principal_token)

    @staticmethod
    def _summary(request: Request, status_code: int, started: float) -> dict[str, object]:
        summary: dict[str, object] = {
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }
        principal = getattr(request.state, "principal", None)
        if principal:
            summary["principal"] = principal
        return summary
