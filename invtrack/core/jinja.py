"""Jinja2 environment shared by the HTML routers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable

from fastapi.templating import Jinja2Templates

from .config import settings
from .dates import month_label, to_local


def fmt_dt(value: Any, fmt: str = "%Y-%m-%d %H:%M") -> str:
    moment = to_local(value)
    return moment.strftime(fmt) if moment is not None else ""


def fmt_date_only(value: Any) -> str:
    # Count dates are calendar days; shifting them by timezone would move them.
    return str(value or "")[:10]


def fmt_signed(value: Any) -> str:
    """Quantity delta with an explicit sign: ``+2``, ``0``, ``-3``."""

    try:
        delta = int(value)
    except (TypeError, ValueError):
        return ""
    return f"{delta:+d}" if delta else "0"


def fmt_period(month: Any, year: Any = None) -> str:
    try:
        label = month_label(int(month))
    except (TypeError, ValueError, IndexError):
        return ""
    return f"{label} {year}" if year else label


FILTERS: dict[str, Callable[..., str]] = {
    "fmt_dt": fmt_dt,
    "fmt_date_only": fmt_date_only,
    "fmt_signed": fmt_signed,
    "fmt_period": fmt_period,
}


@lru_cache
def get_templates() -> Jinja2Templates:
    templates = Jinja2Templates(directory=str(settings.TEMPLATES_DIR))
    templates.env.filters.update(FILTERS)
    templates.env.globals["app_name"] = settings.APP_NAME
    return templates
