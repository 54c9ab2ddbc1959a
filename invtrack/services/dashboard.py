"""Department dashboard: headline counts, activity and low-stock data series."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.dates import month_label, period_bounds, trailing_periods
from ..models.area import Area
from ..models.monthly import MonthlyInventory
from ..models.record import Record
from ..models.threshold import Threshold
from ..models.user import User
from ..schemas.inventory import Dashboard, DashboardKpis, LowStockRow, NamedCount, SeriesPoint
from . import lookups

LOW_STOCK_LIMIT = 20
ACTIVITY_MONTHS = 6
SERIES_MONTHS = 12


def _short_label(month: int, year: int) -> str:
    return f"{month_label(month).title()} {str(year)[2:]}"


def _department_records(department_id: int):
    return select(Record).join(Area, Area.id == Record.area_id).where(Area.department_id == department_id)


def kpis(db: Session, department_id: int, *, now: datetime | None = None) -> DashboardKpis:
    now = now or datetime.now(tz=timezone.utc)
    info = lookups.get_lookups(db, department_id)
    cutoff = (now - timedelta(days=30)).isoformat(timespec="seconds").replace("+00:00", "Z")
    base = _department_records(department_id).subquery()
    recent = db.execute(select(func.count()).select_from(base).where(base.c.created_at >= cutoff)).scalar_one()
    last_saved = db.execute(select(func.max(base.c.created_at))).scalar()
    return DashboardKpis(
        areas=len(info.areas),
        categories=len(info.categories),
        items=sum(1 for item in info.items.values() if not item.deleted),
        records_last_30_days=int(recent or 0),
        last_saved=last_saved,
    )


def activity(db: Session, department_id: int, *, today: date | None = None) -> list[SeriesPoint]:
    """Records saved per month over the last six months, oldest first."""

    today = today or date.today()
    base = _department_records(department_id).subquery()
    month_key = func.substr(base.c.created_at, 1, 7)
    counts = dict(db.execute(select(month_key, func.count()).group_by(month_key)).all())
    return [
        SeriesPoint(label=_short_label(m, y), value=int(counts.get(f"{y:04d}-{m:02d}", 0)))
        for m, y in trailing_periods(today.month, today.year, ACTIVITY_MONTHS)
    ]


def records_by_user(db: Session, department_id: int, month: int, year: int) -> list[NamedCount]:
    start, end = period_bounds(month, year)
    stmt = (
        select(func.coalesce(User.username, "unknown"), func.count(Record.id).label("n"))
        .select_from(Record)
        .join(Area, Area.id == Record.area_id)
        .outerjoin(User, User.id == Record.user_id)
        .where(Area.department_id == department_id, Record.inventory_date >= start, Record.inventory_date < end)
        .group_by(User.username)
        .order_by(desc("n"), User.username)
    )
    return [NamedCount(name=name, count=int(count)) for name, count in db.execute(stmt).all()]


def records_by_area(db: Session, department_id: int, month: int, year: int) -> list[NamedCount]:
    start, end = period_bounds(month, year)
    stmt = (
        select(Area.name, func.count(Record.id).label("n"))
        .select_from(Record)
        .join(Area, Area.id == Record.area_id)
        .where(Area.department_id == department_id, Record.inventory_date >= start, Record.inventory_date < end)
        .group_by(Area.name)
        .order_by(desc("n"), Area.name)
    )
    return [NamedCount(name=name, count=int(count)) for name, count in db.execute(stmt).all()]


def low_stock(db: Session, department_id: int) -> list[LowStockRow]:
    """Items whose latest saved monthly total is below their summed thresholds."""

    latest = db.execute(
        select(MonthlyInventory.year, MonthlyInventory.month)
        .where(MonthlyInventory.department_id == department_id, MonthlyInventory.item_id.is_not(None))
        .order_by(desc(MonthlyInventory.year), desc(MonthlyInventory.month))
        .limit(1)
    ).first()
    if latest is None:
        return []
    totals = dict(
        db.execute(
            select(MonthlyInventory.item_id, func.sum(MonthlyInventory.qty_total))
            .where(
                MonthlyInventory.department_id == department_id,
                MonthlyInventory.year == latest.year,
                MonthlyInventory.month == latest.month,
                MonthlyInventory.item_id.is_not(None),
            )
            .group_by(MonthlyInventory.item_id)
        ).all()
    )
    expected = dict(
        db.execute(
            select(Threshold.item_id, func.sum(Threshold.expected_qty))
            .join(Area, Area.id == Threshold.area_id)
            .where(Area.department_id == department_id)
            .group_by(Threshold.item_id)
        ).all()
    )
    if not expected:
        return []
    names = lookups.resolve_items(db, department_id, expected)
    rows = []
    for item_id, wanted in expected.items():
        current = int(totals.get(item_id) or 0)
        wanted = int(wanted or 0)
        if current >= wanted:
            continue
        info = names.get(item_id)
        rows.append(
            LowStockRow(
                item_id=item_id,
                item_name=info.name if info else f"Item {item_id}",
                expected=wanted,
                current=current,
                deficit=current - wanted,
            )
        )
    rows.sort(key=lambda row: (row.deficit, row.item_name))
    return rows[:LOW_STOCK_LIMIT]


def item_series(db: Session, department_id: int, item_id: int, *, today: date | None = None) -> list[SeriesPoint]:
    """Saved monthly quantity of one item over the last twelve months."""

    today = today or date.today()
    rows = db.execute(
        select(MonthlyInventory.year, MonthlyInventory.month, func.sum(MonthlyInventory.qty_total))
        .where(MonthlyInventory.department_id == department_id, MonthlyInventory.item_id == item_id)
        .group_by(MonthlyInventory.year, MonthlyInventory.month)
    ).all()
    totals = {(int(y), int(m)): int(total or 0) for y, m, total in rows}
    return [
        SeriesPoint(label=_short_label(m, y), value=totals.get((y, m), 0))
        for m, y in trailing_periods(today.month, today.year, SERIES_MONTHS)
    ]


def build_dashboard(
    db: Session,
    department_id: int,
    *,
    month: int | None = None,
    year: int | None = None,
    item_id: int | None = None,
    today: date | None = None,
) -> Dashboard:
    today = today or date.today()
    month = month or today.month
    year = year or today.year
    return Dashboard(
        department_id=department_id,
        kpis=kpis(db, department_id),
        activity=activity(db, department_id, today=today),
        records_by_user=records_by_user(db, department_id, month, year),
        records_by_area=records_by_area(db, department_id, month, year),
        low_stock=low_stock(db, department_id),
        item_series=item_series(db, department_id, item_id, today=today) if item_id else [],
        series_item_id=item_id,
    )
