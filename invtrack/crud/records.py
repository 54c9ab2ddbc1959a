"""Count sheets and count records.

A record is one full count of one area on one calendar day. Every item on the
sheet gets a line; a blank entry is stored as 0.
"""

from __future__ import annotations

import logging

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, selectinload

from ..core.dates import parse_date_only, utcnow_iso
from ..core.errors import InvalidInput, NotFound
from ..core.logging import log_event
from ..models.area import Area
from ..models.catalog import AreaItem, Category, Item
from ..models.record import Record, RecordItem
from ..models.threshold import Threshold
from ..models.user import User
from ..services.access import ensure_admin, ensure_department_access
from ..services.quantities import collect_quantities

logger = logging.getLogger(__name__)


def sheet_items(db: Session, area_id: int, category_id: int | None = None) -> list[Item]:
    """Items linked to an area, archived ones excluded, in sheet order."""

    stmt = (
        select(Item)
        .join(AreaItem, AreaItem.item_id == Item.id)
        .join(Category, Category.id == Item.category_id)
        .where(AreaItem.area_id == area_id, Item.deleted_at.is_(None))
        .order_by(Category.name, Item.name, func.coalesce(Item.vendor, ""), Item.id)
    )
    if category_id is not None:
        stmt = stmt.where(Item.category_id == category_id)
    return db.execute(stmt).unique().scalars().all()


def count_sheet(db: Session, area: Area, category_id: int | None = None) -> list[dict]:
    items = sheet_items(db, area.id, category_id)
    expected = dict(
        db.execute(
            select(Threshold.item_id, Threshold.expected_qty).where(Threshold.area_id == area.id)
        ).all()
    )
    return [
        {
            "item_id": item.id,
            "name": item.name,
            "category_id": item.category_id,
            "category_name": item.category_name,
            "unit": item.unit,
            "vendor": item.vendor,
            "article_number": item.article_number,
            "is_valuable": item.is_valuable,
            "expected_qty": expected.get(item.id),
        }
        for item in items
    ]


def create_record(
    db: Session,
    *,
    area: Area,
    user: User,
    inventory_date: object,
    quantities: dict,
    category_id: int | None = None,
) -> Record:
    """Validate and store a full count of ``area``.

    Header and lines are written in one transaction.
    """

    ensure_department_access(user, area.department_id)
    try:
        day = parse_date_only(inventory_date)
    except ValueError as exc:
        raise InvalidInput(str(exc)) from exc
    items = sheet_items(db, area.id, category_id)
    if not items:
        raise InvalidInput("No items are assigned to this area")
    counted = collect_quantities(items, quantities or {}, blank_as_zero=True)

    record = Record(area_id=area.id, user_id=user.id, inventory_date=day, created_at=utcnow_iso())
    record.items = [RecordItem(item_id=item_id, qty=qty) for item_id, qty in counted.items()]
    db.add(record)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    log_event(
        logger,
        "record.created",
        record_id=record.id,
        area_id=area.id,
        inventory_date=day,
        lines=len(counted),
    )
    return record


def _record_row(record: Record, line_count: int) -> dict:
    return {
        "id": record.id,
        "area_id": record.area_id,
        "area": record.area.name if record.area is not None else "",
        "inventory_date": record.inventory_date,
        "created_at": record.created_at,
        "user": record.user.username if record.user is not None else None,
        "line_count": line_count,
    }


def list_records(
    db: Session,
    actor: User,
    *,
    department_id: int | None = None,
    area_id: int | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[dict]:
    """Records visible to ``actor``, newest first.

    Super admins see everything (optionally one department), admins their
    department and standard users only their own submissions.
    """

    lines = (
        select(RecordItem.record_id, func.count(RecordItem.id).label("n"))
        .group_by(RecordItem.record_id)
        .subquery()
    )
    stmt = (
        select(Record, func.coalesce(lines.c.n, 0))
        .join(Area, Area.id == Record.area_id)
        .outerjoin(lines, lines.c.record_id == Record.id)
        .order_by(desc(Record.inventory_date), desc(Record.created_at), desc(Record.id))
        .limit(limit)
        .offset(offset)
    )
    if actor.is_super_admin:
        if department_id is not None:
            stmt = stmt.where(Area.department_id == department_id)
    elif actor.is_admin:
        stmt = stmt.where(Area.department_id == actor.department_id)
    else:
        stmt = stmt.where(Record.user_id == actor.id)
    if area_id is not None:
        stmt = stmt.where(Record.area_id == area_id)
    return [_record_row(record, count) for record, count in db.execute(stmt).unique().all()]


def get_record(db: Session, record_id: int) -> Record:
    stmt = select(Record).options(selectinload(Record.items)).where(Record.id == record_id)
    record = db.execute(stmt).unique().scalars().first()
    if record is None:
        raise NotFound("Record not found")
    return record


def ensure_record_visible(actor: User, record: Record) -> None:
    if actor.is_admin:
        ensure_department_access(actor, record.area.department_id)
    elif record.user_id != actor.id:
        ensure_admin(actor)


def record_detail(db: Session, actor: User, record_id: int) -> dict:
    record = get_record(db, record_id)
    ensure_record_visible(actor, record)
    lines = sorted(
        record.items,
        key=lambda line: (
            line.item.category_name if line.item is not None else "",
            line.item.name if line.item is not None else "",
        ),
    )
    row = _record_row(record, len(lines))
    row["lines"] = [
        {
            "item_id": line.item_id,
            "item_name": line.item.name if line.item is not None else f"Item {line.item_id}",
            "category_name": line.item.category_name if line.item is not None else "",
            "qty": line.qty,
        }
        for line in lines
    ]
    return row


def delete_record(db: Session, actor: User, record: Record) -> None:
    ensure_admin(actor)
    ensure_department_access(actor, record.area.department_id)
    record_id = record.id
    try:
        db.delete(record)
        db.commit()
    except Exception:
        db.rollback()
        raise
    log_event(logger, "record.deleted", record_id=record_id)
