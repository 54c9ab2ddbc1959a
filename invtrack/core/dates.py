"""Date helpers for count dates and monthly periods.

Inventory dates are calendar days stored as plain ``YYYY-MM-DD`` strings. They
are never converted to timestamps, so a count entered late in the evening does
not drift into the next day when the server runs in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterator
from zoneinfo import ZoneInfo

from .config import settings

MONTH_LABELS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")


def utcnow_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def today_date_only(tz: str | None = None) -> str:
    """Today's calendar date in the configured timezone as ``YYYY-MM-DD``."""

    zone = ZoneInfo(tz or settings.TZ) if (tz or settings.TZ) else None
    return datetime.now(tz=zone).date().isoformat()


def parse_date_only(value: object) -> str:
    """Validate a ``YYYY-MM-DD`` value and return it unchanged in canonical form."""

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value or "").strip()
    if not text:
        raise ValueError("inventory date is required")
    try:
        if len(text) > 10 and text[10] in "T ":
            # A full timestamp keeps the calendar day it was written with.
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
        return date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise ValueError(f"invalid date: {text!r}") from exc


def month_label(month: int) -> str:
    return MONTH_LABELS[month - 1]


def validate_period(month: int, year: int) -> tuple[int, int]:
    if not 1 <= int(month) <= 12:
        raise ValueError("month must be between 1 and 12")
    if not 1900 <= int(year) <= 9999:
        raise ValueError("year is out of range")
    return int(month), int(year)


def previous_period(month: int, year: int) -> tuple[int, int]:
    """The period immediately before ``(month, year)``; January wraps to December."""

    if month == 1:
        return 12, year - 1
    return month - 1, year


def periods_before(month: int, year: int, count: int) -> Iterator[tuple[int, int]]:
    """Yield ``count`` preceding periods, most recent first."""

    m, y = month, year
    for _ in range(count):
        m, y = previous_period(m, y)
        yield m, y


def trailing_periods(month: int, year: int, count: int) -> list[tuple[int, int]]:
    """``count`` periods ending with ``(month, year)``, oldest first."""

    periods = [(month, year), *periods_before(month, year, count - 1)]
    periods.reverse()
    return periods


def period_bounds(month: int, year: int) -> tuple[str, str]:
    """Half-open ``[start, end)`` ISO date bounds of a calendar month."""

    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start.isoformat(), end.isoformat()


def to_local(stamp: object) -> datetime | None:
    """Parse a stored ISO timestamp and convert it to the configured timezone.

    Naive values were written in local time and are only tagged. Unparseable
    input gives ``None``.
    """

    if isinstance(stamp, datetime):
        moment = stamp
    elif isinstance(stamp, str) and stamp:
        try:
            moment = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if not settings.TZ:
        return moment
    zone = ZoneInfo(settings.TZ)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)
