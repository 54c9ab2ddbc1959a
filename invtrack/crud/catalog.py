"""CRUD helpers for categories, items and area/item assignments.

An item is *valuable* when its category is tagged. Valuable items carry a
unique article number, are linked to at most one area, and are archived
(soft-deleted) instead of removed so their history keeps a name.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.orm import Session

from ..core.dates import utcnow_iso
from ..core.errors import AssignmentError, CatalogError, InvalidInput, NotFound
from ..core.logging import log_event
from ..models.area import Area
from ..models.catalog import AreaItem, Category, Item
from ..models.department import Department
from ..models.monthly import MonthlyInventory
from ..models.record import Record, RecordItem
from ..models.spot import SpotInventoryItem
from ..models.threshold import Threshold
from ..services import lookups

logger = logging.getLogger(__name__)


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_name(value: object) -> str:
    name = _clean(value)
    if not name:
        raise InvalidInput("name is required")
    return name


def _invalidate_for_category(category: Category | None) -> None:
    lookups.invalidate(category.department_id if category is not None else None)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(db: Session, department_id: int | None = None) -> list[Category]:
    stmt = select(Category).order_by(Category.name, Category.id)
    if department_id is not None:
        stmt = stmt.where(or_(Category.department_id == department_id, Category.department_id.is_(None)))
    return db.execute(stmt).scalars().all()


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    return category


def create_category(db: Session, payload: dict) -> Category:
    department_id = payload.get("department_id")
    if department_id is not None and db.get(Department, department_id) is None:
        raise InvalidInput("department does not exist")
    category = Category(
        name=_require_name(payload.get("name")),
        department_id=department_id,
        tagged=bool(payload.get("tagged", False)),
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    _invalidate_for_category(category)
    return category


def update_category(db: Session, category: Category, payload: dict) -> Category:
    if payload.get("name") is not None:
        category.name = _require_name(payload.get("name"))
    if payload.get("tagged") is not None:
        category.tagged = bool(payload["tagged"])
    db.commit()
    db.refresh(category)
    _invalidate_for_category(category)
    return category


def delete_category(db: Session, category: Category) -> None:
    in_use = db.execute(select(exists().where(Item.category_id == category.id))).scalar()
    if in_use:
        raise CatalogError("Category still has items and cannot be deleted")
    department_id = category.department_id
    db.delete(category)
    db.commit()
    lookups.invalidate(department_id)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def _department_item_filter(department_id: int):
    linked = select(AreaItem.item_id).join(Area, Area.id == AreaItem.area_id).where(
        Area.department_id == department_id
    )
    return or_(Category.department_id == department_id, Item.id.in_(linked))


def list_items(
    db: Session,
    department_id: int | None = None,
    *,
    category_id: int | None = None,
    include_deleted: bool = False,
) -> list[Item]:
    stmt = select(Item).join(Category, Category.id == Item.category_id).order_by(Category.name, Item.name, Item.id)
    if department_id is not None:
        stmt = stmt.where(_department_item_filter(department_id))
    if category_id is not None:
        stmt = stmt.where(Item.category_id == category_id)
    if not include_deleted:
        stmt = stmt.where(Item.deleted_at.is_(None))
    return db.execute(stmt).unique().scalars().all()


def get_item(db: Session, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def _check_article_number(db: Session, category: Category, article_number: str | None, item_id: int | None) -> None:
    if not category.tagged:
        return
    if not article_number:
        raise CatalogError("Valuable items require an article number")
    stmt = select(Item.id).where(Item.article_number == article_number, Item.deleted_at.is_(None))
    if item_id is not None:
        stmt = stmt.where(Item.id != item_id)
    if db.execute(stmt).first() is not None:
        raise CatalogError(f'Article number "{article_number}" is already in use')


def create_item(db: Session, payload: dict) -> Item:
    name = _require_name(payload.get("name"))
    category_id = payload.get("category_id")
    category = db.get(Category, category_id) if category_id else None
    if category is None:
        raise InvalidInput("a valid category is required")
    article_number = _clean(payload.get("article_number"))
    _check_article_number(db, category, article_number, None)
    item = Item(
        name=name,
        category_id=category.id,
        unit=_clean(payload.get("unit")),
        vendor=_clean(payload.get("vendor")),
        article_number=article_number,
        created_at=utcnow_iso(),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    lookups.invalidate(None)
    return item


def update_item(db: Session, item: Item, payload: dict) -> Item:
    if item.is_deleted:
        raise CatalogError("Archived items cannot be edited")
    name = _require_name(payload["name"]) if payload.get("name") is not None else item.name
    category = item.category
    if payload.get("category_id") is not None and payload["category_id"] != item.category_id:
        category = db.get(Category, payload["category_id"])
        if category is None:
            raise InvalidInput("a valid category is required")
    article_number = _clean(payload["article_number"]) if "article_number" in payload else item.article_number
    _check_article_number(db, category, article_number, item.id)
    if category.tagged and len(item_area_ids(db, item.id)) > 1:
        raise AssignmentError("A valuable item can only be assigned to one area")

    item.name = name
    item.category = category
    item.article_number = article_number
    for field in ("unit", "vendor"):
        if field in payload:
            setattr(item, field, _clean(payload.get(field)))
    db.commit()
    db.refresh(item)
    lookups.invalidate(None)
    return item


def _is_referenced(db: Session, item_id: int) -> bool:
    return bool(
        db.execute(
            select(
                exists().where(RecordItem.item_id == item_id)
                | exists().where(SpotInventoryItem.item_id == item_id)
                | exists().where(MonthlyInventory.item_id == item_id)
            )
        ).scalar()
    )


def delete_item(db: Session, item: Item) -> Item | None:
    """Archive a valuable item or remove an ordinary one.

    Returns the archived item, or ``None`` when the row was removed.
    """

    if not item.is_valuable and _is_referenced(db, item.id):
        raise CatalogError("Item has count history and cannot be deleted")
    item_id = item.id
    archived = item.is_valuable
    try:
        if archived:
            if item.deleted_at is None:
                item.deleted_at = utcnow_iso()
            db.execute(delete(AreaItem).where(AreaItem.item_id == item_id))
        else:
            db.execute(delete(Threshold).where(Threshold.item_id == item_id))
            db.execute(delete(AreaItem).where(AreaItem.item_id == item_id))
            db.delete(item)
        db.commit()
    except Exception:
        db.rollback()
        raise
    lookups.invalidate(None)
    if archived:
        db.refresh(item)
        log_event(logger, "item.archived", item_id=item_id)
        return item
    log_event(logger, "item.deleted", item_id=item_id)
    return None


def _last_area_by_item(db: Session, item_ids: list[int]) -> dict[int, Area]:
    """Area of the most recent record that counted each item."""

    if not item_ids:
        return {}
    rows = db.execute(
        select(RecordItem.item_id, Area)
        .join(Record, Record.id == RecordItem.record_id)
        .join(Area, Area.id == Record.area_id)
        .where(RecordItem.item_id.in_(item_ids))
        .order_by(Record.inventory_date, Record.created_at, Record.id)
    ).all()
    result: dict[int, Area] = {}
    for item_id, area in rows:
        result[item_id] = area
    return result


def archived_items(
    db: Session,
    department_id: int,
    *,
    month: int | None = None,
    year: int | None = None,
) -> list[dict]:
    """Soft-deleted items of a department grouped by category name.

    An archived item belongs to the department through its category or, for
    shared categories, through the area that last counted it. ``month`` and
    ``year`` filter on the archive date.
    """

    candidates = (
        db.execute(
            select(Item)
            .join(Category, Category.id == Item.category_id)
            .where(Item.deleted_at.is_not(None))
            .where(or_(Category.department_id == department_id, Category.department_id.is_(None)))
            .order_by(Category.name, Item.name)
        )
        .unique()
        .scalars()
        .all()
    )
    last_area = _last_area_by_item(db, [item.id for item in candidates])

    groups: dict[str, list[dict]] = defaultdict(list)
    for item in candidates:
        area = last_area.get(item.id)
        if item.category.department_id is None and (area is None or area.department_id != department_id):
            continue
        stamp = item.deleted_at or ""
        if year is not None and stamp[:4] != f"{int(year):04d}":
            continue
        if month is not None and stamp[5:7] != f"{int(month):02d}":
            continue
        groups[item.category_name].append(
            {
                "id": item.id,
                "name": item.name,
                "category_name": item.category_name,
                "area_name": area.name if area is not None else None,
                "deleted_at": stamp,
            }
        )
    return [{"category_name": name, "items": rows} for name, rows in sorted(groups.items())]


# ---------------------------------------------------------------------------
# Area assignments
# ---------------------------------------------------------------------------


def item_area_ids(db: Session, item_id: int, department_id: int | None = None) -> list[int]:
    stmt = select(AreaItem.area_id).where(AreaItem.item_id == item_id).order_by(AreaItem.area_id)
    if department_id is not None:
        stmt = stmt.join(Area, Area.id == AreaItem.area_id).where(Area.department_id == department_id)
    return db.execute(stmt).scalars().all()


def _load_areas(db: Session, area_ids: Iterable[int]) -> list[Area]:
    wanted = sorted({int(area_id) for area_id in area_ids})
    if not wanted:
        return []
    areas = db.execute(select(Area).where(Area.id.in_(wanted))).scalars().all()
    missing = set(wanted) - {area.id for area in areas}
    if missing:
        raise InvalidInput("unknown area", details={"area_ids": sorted(missing)})
    return areas


def _item_fits_department(item: Item, department_id: int) -> bool:
    owner = item.category.department_id if item.category is not None else None
    return owner is None or owner == department_id


def set_item_areas(
    db: Session,
    item: Item,
    area_ids: Iterable[int],
    *,
    department_id: int | None = None,
) -> list[int]:
    """Replace the set of areas ``item`` is linked to.

    With ``department_id`` only the links inside that department are
    replaced and every requested area must belong to it; links in other
    departments are left alone.
    """

    if item.is_deleted:
        raise AssignmentError("Archived items cannot be assigned")
    areas = _load_areas(db, area_ids)
    foreign = [area.id for area in areas if department_id is not None and area.department_id != department_id]
    if foreign:
        raise AssignmentError("Areas belong to another department", details={"area_ids": foreign})
    misplaced = [area.id for area in areas if not _item_fits_department(item, area.department_id)]
    if misplaced:
        raise AssignmentError(
            f'"{item.name}" belongs to another department', details={"area_ids": misplaced}
        )
    wanted = {area.id for area in areas}
    current = set(item_area_ids(db, item.id, department_id))
    kept_elsewhere = set(item_area_ids(db, item.id)) - current
    if item.is_valuable and len(wanted | kept_elsewhere) > 1:
        raise AssignmentError("A valuable item can only be assigned to one area")
    try:
        stale = current - wanted
        if stale:
            db.execute(delete(AreaItem).where(AreaItem.item_id == item.id, AreaItem.area_id.in_(stale)))
        for area_id in sorted(wanted - current):
            db.add(AreaItem(area_id=area_id, item_id=item.id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    lookups.invalidate(None)
    return sorted(wanted)


def area_item_ids(db: Session, area_id: int) -> list[int]:
    stmt = select(AreaItem.item_id).where(AreaItem.area_id == area_id).order_by(AreaItem.item_id)
    return db.execute(stmt).scalars().all()


def set_area_items(db: Session, area: Area, item_ids: Iterable[int]) -> list[int]:
    """Replace the items shown on ``area``'s count sheet."""

    wanted = sorted({int(item_id) for item_id in item_ids})
    items = db.execute(select(Item).where(Item.id.in_(wanted))).unique().scalars().all() if wanted else []
    missing = set(wanted) - {item.id for item in items}
    if missing:
        raise InvalidInput("unknown item", details={"item_ids": sorted(missing)})
    for item in items:
        if item.is_deleted:
            raise AssignmentError(f'"{item.name}" is archived and cannot be assigned')
        if not _item_fits_department(item, area.department_id):
            raise AssignmentError(f'"{item.name}" belongs to another department', details={"item_ids": [item.id]})
        if item.is_valuable:
            elsewhere = db.execute(
                select(AreaItem.area_id).where(AreaItem.item_id == item.id, AreaItem.area_id != area.id)
            ).first()
            if elsewhere is not None:
                raise AssignmentError(f'"{item.name}" is valuable and already assigned to another area')
    current = set(area_item_ids(db, area.id))
    try:
        stale = current - set(wanted)
        if stale:
            db.execute(delete(AreaItem).where(AreaItem.area_id == area.id, AreaItem.item_id.in_(stale)))
        for item_id in wanted:
            if item_id not in current:
                db.add(AreaItem(area_id=area.id, item_id=item_id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    lookups.invalidate(area.department_id)
    return wanted
