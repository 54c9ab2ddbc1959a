"""Current-stock views built from each area's latest count.

``inventory_matrix`` and ``area_summary`` stand in for the two stored
procedures the pages call; ``pivot`` and ``compare`` reshape the matrix for
display.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..crud.records import sheet_items
from ..crud.thresholds import thresholds_by_area
from ..models.area import Area
from ..models.catalog import Item
from ..models.record import Record, RecordItem
from ..models.spot import SpotInventory, SpotInventoryItem
from ..schemas.inventory import (
    AreaSummaryLine,
    CompareCell,
    CompareGroup,
    CompareRow,
    InventoryPivot,
    MatrixLine,
    PivotGroup,
    PivotRow,
)
from . import lookups
from .reconciliation import latest_record_ids

ALL = "all"
NO_AREAS = "no-areas"


def _sort_key(category: str, item: str, vendor: str | None, article: str | None):
    return (category.casefold(), item.casefold(), (vendor or "").casefold(), article or "")


def inventory_matrix(db: Session, department_id: int) -> list[MatrixLine]:
    """Lines of every area's latest record in the department."""

    record_ids = latest_record_ids(db, department_id)
    if not record_ids:
        return []
    stmt = (
        select(RecordItem.item_id, RecordItem.qty, Record.area_id, Area.name)
        .join(Record, Record.id == RecordItem.record_id)
        .join(Area, Area.id == Record.area_id)
        .where(RecordItem.record_id.in_(record_ids))
    )
    rows = db.execute(stmt).all()
    items = lookups.resolve_items(db, department_id, {row.item_id for row in rows})
    lines: list[MatrixLine] = []
    for item_id, qty, area_id, area_name in rows:
        info = items.get(item_id)
        lines.append(
            MatrixLine(
                area_id=area_id,
                area=area_name,
                item_id=item_id,
                category=info.category_name if info else "",
                item=info.name if info else f"Item {item_id}",
                unit=info.unit if info else None,
                vendor=info.vendor if info else None,
                article_number=info.article_number if info else None,
                qty=int(qty or 0),
            )
        )
    lines.sort(key=lambda line: (line.area.casefold(),) + _sort_key(line.category, line.item, line.vendor, line.article_number))
    return lines


def _filter_category(lines: Iterable[MatrixLine], category: str | None) -> list[MatrixLine]:
    if not category or category == ALL:
        return list(lines)
    return [line for line in lines if line.category == category]


def pivot(
    lines: list[MatrixLine],
    *,
    department_id: int,
    category: str | None = ALL,
    area: str | None = ALL,
) -> InventoryPivot:
    """Pivot matrix lines into one row per item with a column per area.

    ``area`` is ``"all"``, ``"no-areas"`` (totals only) or one area name.
    ``shown_total`` sums the displayed areas, or everything when none are.
    """

    categories = sorted({line.category for line in lines}, key=str.casefold)
    base = _filter_category(lines, category)
    all_areas = sorted({line.area for line in base}, key=str.casefold)
    area = area or ALL
    if area == ALL:
        shown = all_areas
    elif area == NO_AREAS:
        shown = []
    else:
        shown = [name for name in all_areas if name == area]

    rows: dict[int, PivotRow] = {}
    for line in base:
        row = rows.get(line.item_id)
        if row is None:
            row = PivotRow(
                item_id=line.item_id,
                category=line.category,
                vendor=line.vendor or "",
                item=line.item,
                article_number=line.article_number,
            )
            rows[line.item_id] = row
        row.areas[line.area] = row.areas.get(line.area, 0) + line.qty
        row.total += line.qty

    ordered = sorted(rows.values(), key=lambda r: _sort_key(r.category, r.item, r.vendor, r.article_number))
    groups: "OrderedDict[str, list[PivotRow]]" = OrderedDict()
    for row in ordered:
        row.shown_total = sum(row.areas.get(name, 0) for name in shown) if shown else row.total
        groups.setdefault(row.category, []).append(row)

    return InventoryPivot(
        department_id=department_id,
        areas=all_areas,
        displayed_areas=shown,
        categories=categories,
        groups=[PivotGroup(category=name, rows=group) for name, group in groups.items()],
    )


def _status(qty: int, expected: int) -> str:
    if qty < expected:
        return "below"
    if qty == expected:
        return "at"
    return "above"


def compare(
    db: Session,
    department_id: int,
    lines: list[MatrixLine],
    *,
    areas: list[str] | None = None,
    category: str | None = ALL,
) -> list[CompareGroup]:
    """Current quantity next to the expected quantity for the chosen areas.

    Items with either a count or a threshold in the department appear.
    Missing values on either side read as 0.
    """

    department_areas = lookups.get_lookups(db, department_id).areas
    selected = areas if areas else sorted(department_areas.values(), key=str.casefold)
    base = _filter_category(lines, category)

    qty: dict[int, dict[str, int]] = {}
    for line in base:
        per_area = qty.setdefault(line.item_id, {})
        per_area[line.area] = per_area.get(line.area, 0) + line.qty

    expected: dict[int, dict[str, int]] = {}
    for area_id, by_item in thresholds_by_area(db, list(department_areas)).items():
        area_name = department_areas.get(area_id)
        for item_id, value in by_item.items():
            expected.setdefault(item_id, {})[area_name] = value

    items = lookups.resolve_items(db, department_id, set(qty) | set(expected))
    rows: list[CompareRow] = []
    for item_id in set(qty) | set(expected):
        info = items.get(item_id)
        if info is None:
            continue
        if category and category != ALL and info.category_name != category:
            continue
        row = CompareRow(
            item_id=item_id,
            category=info.category_name,
            vendor=info.vendor or "",
            item=info.name,
            article_number=info.article_number,
        )
        for name in selected:
            counted = qty.get(item_id, {}).get(name, 0)
            wanted = expected.get(item_id, {}).get(name, 0)
            row.by_area[name] = CompareCell(qty=counted, expected=wanted, status=_status(counted, wanted))
        rows.append(row)

    rows.sort(key=lambda r: _sort_key(r.category, r.item, r.vendor, r.article_number))
    groups: "OrderedDict[str, list[CompareRow]]" = OrderedDict()
    for row in rows:
        groups.setdefault(row.category, []).append(row)
    return [CompareGroup(category=name, rows=group) for name, group in groups.items()]


def latest_record(db: Session, area_id: int) -> Record | None:
    stmt = (
        select(Record)
        .where(Record.area_id == area_id)
        .order_by(desc(Record.inventory_date), desc(Record.created_at), desc(Record.id))
        .limit(1)
    )
    return db.execute(stmt).unique().scalars().first()


def area_summary(db: Session, area: Area) -> list[AreaSummaryLine]:
    """Current quantity of every item on an area's sheet.

    The latest record is the baseline; a spot count saved after it overrides
    the quantity of the items it counted and contributes its note.
    """

    items: list[Item] = sheet_items(db, area.id)
    record = latest_record(db, area.id)
    counted: dict[int, int] = {}
    if record is not None:
        counted = dict(
            db.execute(select(RecordItem.item_id, RecordItem.qty).where(RecordItem.record_id == record.id)).all()
        )

    spot_stmt = (
        select(SpotInventoryItem.item_id, SpotInventoryItem.qty, SpotInventory.note)
        .join(SpotInventory, SpotInventory.id == SpotInventoryItem.spot_inventory_id)
        .where(SpotInventory.area_id == area.id)
        .order_by(SpotInventory.inventory_date, SpotInventory.created_at, SpotInventory.id)
    )
    if record is not None:
        spot_stmt = spot_stmt.where(
            (SpotInventory.inventory_date > record.inventory_date)
            | (
                (SpotInventory.inventory_date == record.inventory_date)
                & (SpotInventory.created_at > record.created_at)
            )
        )
    spotted: dict[int, tuple[int, str]] = {}
    for item_id, qty, note in db.execute(spot_stmt).all():
        spotted[item_id] = (int(qty or 0), note or "")

    lines: list[AreaSummaryLine] = []
    for item in items:
        if item.id in spotted:
            qty, note = spotted[item.id]
            lines.append(
                AreaSummaryLine(item_id=item.id, item=item.name, category=item.category_name, qty=qty, source="spot", note=note)
            )
        elif item.id in counted:
            lines.append(
                AreaSummaryLine(
                    item_id=item.id, item=item.name, category=item.category_name, qty=int(counted[item.id] or 0), source="record"
                )
            )
        else:
            lines.append(AreaSummaryLine(item_id=item.id, item=item.name, category=item.category_name, qty=0, source="none"))
    return lines
