from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var
from .config import settings

# uvicorn's access log duplicates request.completed from the request middleware.
_QUIET_LOGGERS = ("uvicorn.access",)


def _context_fields() -> dict[str, Any]:
    fields: dict[str, Any] = {}
    request_id = request_id_ctx_var.get()
    if request_id:
        fields["request_id"] = request_id
    principal = principal_ctx_var.get()
    if principal:
        fields["user"] = principal
    return fields


class InventoryJsonFormatter(logging.Formatter):
    """One JSON object per line: event, level, logger, request context and fields."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "ts": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            **_context_fields(),
        }
        fields = getattr(record, "extra_data", None)
        if isinstance(fields, Mapping):
            entry["data"] = dict(fields)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(level: str | int | None = None) -> None:
    resolved = level if level is not None else settings.LOG_LEVEL
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    handler = logging.StreamHandler()
    handler.setFormatter(InventoryJsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(resolved)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.info(event, extra={"extra_data": fields})
