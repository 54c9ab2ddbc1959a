"""Monthly reconciliation of counted stock against the previous snapshot.

For a department and a target period:

1. take each area's single latest record (by inventory date, then save time);
2. sum those records' lines per item -> current totals;
3. sum the previous period's saved snapshot rows per item -> previous totals
   (rows without an item id are legacy period headers and are ignored);
4. report one row per item in either set with ``diff = current - previous``.

A snapshot can only be saved when every row with a non-zero diff carries a
note. Saving replaces the period: one row per (department, item, month, year)
is written and rows the reconciliation no longer produces are deleted.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping

from sqlalchemy import delete, desc, func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.dates import month_label, periods_before, previous_period, utcnow_iso, validate_period
from ..core.errors import InvalidInput, MissingVarianceNotes
from ..core.logging import log_event
from ..models.area import Area
from ..models.monthly import MonthlyInventory
from ..models.record import Record, RecordItem
from ..schemas.inventory import (
    HistoryPeriod,
    HistoryRow,
    MonthlyGroup,
    MonthlyHistory,
    MonthlyReconciliation,
    MonthlyRow,
    MonthlySaveResult,
    RowStatus,
)
from . import lookups

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def _period(month: int, year: int) -> tuple[int, int]:
    try:
        return validate_period(month, year)
    except ValueError as exc:
        raise InvalidInput(str(exc)) from exc


def latest_record_ids(db: Session, department_id: int) -> list[int]:
    """Id of the newest record of every area in the department."""

    ranked = (
        select(
            Record.id.label("record_id"),
            func.row_number()
            .over(
                partition_by=Record.area_id,
                order_by=(desc(Record.inventory_date), desc(Record.created_at), desc(Record.id)),
            )
            .label("rn"),
        )
        .join(Area, Area.id == Record.area_id)
        .where(Area.department_id == department_id)
        .subquery()
    )
    stmt = select(ranked.c.record_id).where(ranked.c.rn == 1).order_by(ranked.c.record_id)
    return db.execute(stmt).scalars().all()


def current_totals(db: Session, department_id: int) -> dict[int, int]:
    record_ids = latest_record_ids(db, department_id)
    if not record_ids:
        return {}
    stmt = (
        select(RecordItem.item_id, func.coalesce(func.sum(RecordItem.qty), 0))
        .where(RecordItem.record_id.in_(record_ids))
        .group_by(RecordItem.item_id)
    )
    return {item_id: int(total) for item_id, total in db.execute(stmt).all()}


def snapshot_totals(db: Session, department_id: int, month: int, year: int) -> dict[int, int]:
    """Saved quantity per item for one period; duplicate legacy rows are summed."""

    stmt = (
        select(MonthlyInventory.item_id, func.coalesce(func.sum(MonthlyInventory.qty_total), 0))
        .where(
            MonthlyInventory.department_id == department_id,
            MonthlyInventory.month == month,
            MonthlyInventory.year == year,
            MonthlyInventory.item_id.is_not(None),
        )
        .group_by(MonthlyInventory.item_id)
    )
    return {item_id: int(total) for item_id, total in db.execute(stmt).all()}


def previous_totals(db: Session, department_id: int, month: int, year: int) -> dict[int, int]:
    prev_month, prev_year = previous_period(month, year)
    return snapshot_totals(db, department_id, prev_month, prev_year)


def snapshot_notes(db: Session, department_id: int, month: int, year: int) -> dict[int, str]:
    stmt = (
        select(MonthlyInventory.item_id, MonthlyInventory.notes)
        .where(
            MonthlyInventory.department_id == department_id,
            MonthlyInventory.month == month,
            MonthlyInventory.year == year,
            MonthlyInventory.item_id.is_not(None),
        )
        .order_by(MonthlyInventory.id)
    )
    notes: dict[int, list[str]] = defaultdict(list)
    for item_id, note in db.execute(stmt).all():
        if note and note.strip():
            notes[item_id].append(note.strip())
    return {item_id: "; ".join(parts) for item_id, parts in notes.items()}


def classify(diff: int, current: int) -> RowStatus:
    if diff < 0:
        return "shortage"
    if diff == 0:
        return "unchanged"
    if diff == current:
        return "new"
    return "surplus"


def build_rows(
    current: Mapping[int, int],
    previous: Mapping[int, int],
    *,
    notes: Mapping[int, str] | None = None,
    items: Mapping[int, lookups.ItemInfo] | None = None,
) -> list[MonthlyRow]:
    """One row per item found in ``current`` or ``previous``.

    Names come from ``items`` and only affect labels and ordering.
    """

    notes = notes or {}
    items = items or {}
    rows: list[MonthlyRow] = []
    for item_id in set(current) | set(previous):
        qty_current = int(current.get(item_id, 0))
        qty_prev = int(previous.get(item_id, 0))
        diff = qty_current - qty_prev
        info = items.get(item_id)
        rows.append(
            MonthlyRow(
                category_id=info.category_id if info else 0,
                category_name=(info.category_name or UNCATEGORIZED) if info else UNCATEGORIZED,
                item_id=item_id,
                item_name=info.name if info else f"Item {item_id}",
                item_number=info.article_number if info else None,
                qty_current_total=qty_current,
                qty_prev_total=qty_prev,
                diff=diff,
                status=classify(diff, qty_current),
                notes=(notes.get(item_id) or "").strip(),
            )
        )
    rows.sort(key=lambda row: (row.category_name.casefold(), row.item_name.casefold(), row.item_id))
    return rows


def group_rows(rows: Iterable[MonthlyRow]) -> list[MonthlyGroup]:
    groups: dict[int, MonthlyGroup] = {}
    for row in rows:
        group = groups.get(row.category_id)
        if group is None:
            group = MonthlyGroup(category_id=row.category_id, category_name=row.category_name, delta=0, items=[])
            groups[row.category_id] = group
        group.items.append(row)
        group.delta += row.diff
    return list(groups.values())


def missing_notes(rows: Iterable[MonthlyRow]) -> list[int]:
    """Item ids whose non-zero diff has no explanation."""

    return [row.item_id for row in rows if row.diff != 0 and not row.notes.strip()]


def _normalize_notes(notes: Mapping | None) -> dict[int, str]:
    return {int(item_id): str(note or "") for item_id, note in (notes or {}).items()}


def reconcile(
    db: Session,
    department_id: int,
    month: int,
    year: int,
    *,
    notes: Mapping[int, str] | None = None,
) -> MonthlyReconciliation:
    """Compute the reconciliation rows for a period.

    Without ``notes`` the notes already saved for the period are shown.
    """

    month, year = _period(month, year)
    prev_month, prev_year = previous_period(month, year)
    current = current_totals(db, department_id)
    previous = previous_totals(db, department_id, month, year)
    saved_notes = snapshot_notes(db, department_id, month, year)
    attached = _normalize_notes(notes) if notes is not None else saved_notes
    items = lookups.resolve_items(db, department_id, set(current) | set(previous))
    rows = build_rows(current, previous, notes=attached, items=items)
    saved = db.execute(
        select(MonthlyInventory.id).where(
            MonthlyInventory.department_id == department_id,
            MonthlyInventory.month == month,
            MonthlyInventory.year == year,
            MonthlyInventory.item_id.is_not(None),
        )
    ).first() is not None
    return MonthlyReconciliation(
        department_id=department_id,
        month=month,
        year=year,
        previous_month=prev_month,
        previous_year=prev_year,
        rows=rows,
        groups=group_rows(rows),
        saved=saved,
    )


def save_snapshot(
    db: Session,
    department_id: int,
    month: int,
    year: int,
    notes: Mapping[int, str] | None,
) -> MonthlySaveResult:
    """Replace the period's snapshot with its reconciliation, after the notes gate.

    This is a replace, not an upsert: rows are recomputed from the store,
    matching rows are updated, new ones inserted and any row of the period
    the reconciliation no longer produces is deleted. ``notes`` only supplies
    the explanations. Everything happens in one transaction, so saving twice
    with the same input leaves the same rows.
    """

    result = reconcile(db, department_id, month, year, notes=_normalize_notes(notes))
    rows = result.rows
    if not rows:
        raise InvalidInput("There is nothing to save for this period")
    missing = missing_notes(rows)
    if missing:
        log_event(
            logger,
            "monthly.rejected",
            department_id=department_id,
            month=result.month,
            year=result.year,
            missing=missing,
        )
        raise MissingVarianceNotes(missing)

    stamp = utcnow_iso()
    try:
        existing: dict[int, MonthlyInventory] = {}
        duplicates: list[int] = []
        stmt = (
            select(MonthlyInventory)
            .where(
                MonthlyInventory.department_id == department_id,
                MonthlyInventory.month == result.month,
                MonthlyInventory.year == result.year,
                MonthlyInventory.item_id.is_not(None),
            )
            .order_by(MonthlyInventory.id)
        )
        for snapshot in db.execute(stmt).scalars():
            if snapshot.item_id in existing:
                duplicates.append(snapshot.id)
            else:
                existing[snapshot.item_id] = snapshot

        wanted = {row.item_id for row in rows}
        stale = [item_id for item_id in existing if item_id not in wanted]
        doomed = duplicates + [existing.pop(item_id).id for item_id in stale]
        if doomed:
            db.execute(
                delete(MonthlyInventory)
                .where(MonthlyInventory.id.in_(doomed))
                .execution_options(synchronize_session=False)
            )
        # Legacy duplicates must be gone before any insert can hit the unique index.
        db.flush()

        for row in rows:
            snapshot = existing.get(row.item_id)
            if snapshot is None:
                db.add(
                    MonthlyInventory(
                        department_id=department_id,
                        item_id=row.item_id,
                        category_id=row.category_id or None,
                        month=result.month,
                        year=result.year,
                        qty_total=row.qty_current_total,
                        notes=row.notes,
                        updated_at=stamp,
                    )
                )
            else:
                snapshot.qty_total = row.qty_current_total
                snapshot.notes = row.notes
                snapshot.category_id = row.category_id or None
                snapshot.updated_at = stamp
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "monthly.save_failed",
            extra={"extra_data": {"department_id": department_id, "month": result.month, "year": result.year}},
        )
        raise

    log_event(
        logger,
        "monthly.saved",
        department_id=department_id,
        month=result.month,
        year=result.year,
        rows=len(rows),
        collapsed=len(duplicates),
    )
    return MonthlySaveResult(department_id=department_id, month=result.month, year=result.year, saved_rows=len(rows))


def compare_history(
    db: Session,
    department_id: int,
    month: int,
    year: int,
    periods: int = 3,
) -> MonthlyHistory:
    """Current totals next to the saved totals of ``periods`` preceding months.

    Periods are listed oldest first. Each row's notes are the non-empty
    period notes formatted ``MON YYYY: note`` and joined with `` | ``.
    """

    month, year = _period(month, year)
    if not 1 <= int(periods) <= settings.HISTORY_MAX_PERIODS:
        raise InvalidInput(f"periods must be between 1 and {settings.HISTORY_MAX_PERIODS}")
    window = list(periods_before(month, year, int(periods)))
    window.reverse()

    current = current_totals(db, department_id)
    by_period: list[tuple[HistoryPeriod, dict[int, int], dict[int, str]]] = []
    item_ids: set[int] = set(current)
    for m, y in window:
        label = f"{month_label(m)} {y}"
        totals = snapshot_totals(db, department_id, m, y)
        notes = snapshot_notes(db, department_id, m, y)
        item_ids.update(totals)
        by_period.append((HistoryPeriod(month=m, year=y, label=label), totals, notes))

    items = lookups.resolve_items(db, department_id, item_ids)
    rows: list[HistoryRow] = []
    for item_id in item_ids:
        info = items.get(item_id)
        period_notes = [
            f"{period.label}: {notes[item_id]}" for period, _, notes in by_period if notes.get(item_id)
        ]
        rows.append(
            HistoryRow(
                category_name=(info.category_name or UNCATEGORIZED) if info else UNCATEGORIZED,
                item_id=item_id,
                item_name=info.name if info else f"Item {item_id}",
                item_number=info.article_number if info else None,
                qty_current_total=current.get(item_id, 0),
                by_period={period.label: totals.get(item_id, 0) for period, totals, _ in by_period},
                notes=" | ".join(period_notes),
            )
        )
    rows.sort(key=lambda row: (row.category_name.casefold(), row.item_name.casefold(), row.item_id))
    return MonthlyHistory(
        department_id=department_id,
        month=month,
        year=year,
        periods=[period for period, _, _ in by_period],
        rows=rows,
    )
