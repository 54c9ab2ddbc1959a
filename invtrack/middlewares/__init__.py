from __future__ import annotations

from .request_context import RequestContextMiddleware, principal_ctx_var, request_id_ctx_var
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "request_id_ctx_var",
    "principal_ctx_var",
]
