"""Read-through cache of per-department name lookups.

Several pages need the same area/category/item name maps for a department.
They are loaded once per department and dropped whenever the catalog changes
through ``invalidate``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..models.area import Area
from ..models.catalog import AreaItem, Category, Item


@dataclass(frozen=True)
class ItemInfo:
    id: int
    name: str
    category_id: int
    category_name: str
    article_number: str | None
    vendor: str | None
    unit: str | None
    valuable: bool
    deleted: bool


@dataclass
class DepartmentLookups:
    department_id: int
    areas: dict[int, str] = field(default_factory=dict)
    categories: dict[int, str] = field(default_factory=dict)
    items: dict[int, ItemInfo] = field(default_factory=dict)

    def item_label(self, item_id: int) -> str:
        info = self.items.get(item_id)
        return info.name if info else f"Item {item_id}"


def _info(item: Item) -> ItemInfo:
    return ItemInfo(
        id=item.id,
        name=item.name,
        category_id=item.category_id,
        category_name=item.category_name,
        article_number=item.article_number,
        vendor=item.vendor,
        unit=item.unit,
        valuable=item.is_valuable,
        deleted=item.is_deleted,
    )


_cache: dict[int, DepartmentLookups] = {}
_lock = threading.Lock()


def _load(db: Session, department_id: int) -> DepartmentLookups:
    lookups = DepartmentLookups(department_id=department_id)

    areas = db.execute(
        select(Area.id, Area.name).where(Area.department_id == department_id).order_by(Area.name)
    ).all()
    lookups.areas = {row.id: row.name for row in areas}

    categories = db.execute(
        select(Category.id, Category.name)
        .where(or_(Category.department_id == department_id, Category.department_id.is_(None)))
        .order_by(Category.name)
    ).all()
    lookups.categories = {row.id: row.name for row in categories}

    # Items belong to a department through their category or an area link.
    linked = select(AreaItem.item_id).join(Area, Area.id == AreaItem.area_id).where(
        Area.department_id == department_id
    )
    items = (
        db.execute(
            select(Item)
            .join(Category, Category.id == Item.category_id)
            .where(or_(Category.department_id == department_id, Item.id.in_(linked)))
            .order_by(Item.name)
        )
        .unique()
        .scalars()
        .all()
    )
    for item in items:
        lookups.items[item.id] = _info(item)
    return lookups


def get_lookups(db: Session, department_id: int) -> DepartmentLookups:
    with _lock:
        cached = _cache.get(department_id)
    if cached is not None:
        return cached
    loaded = _load(db, department_id)
    with _lock:
        _cache[department_id] = loaded
    return loaded


def resolve_items(db: Session, department_id: int, item_ids) -> dict[int, ItemInfo]:
    """Return info for ``item_ids``, loading any the department maps don't know.

    Snapshots can reference items that have since moved to another
    department's category or were hard-deleted.
    """

    item_ids = list(item_ids)
    lookups = get_lookups(db, department_id)
    found = {item_id: lookups.items[item_id] for item_id in item_ids if item_id in lookups.items}
    missing = [item_id for item_id in item_ids if item_id not in found]
    if missing:
        for item in db.execute(select(Item).where(Item.id.in_(missing))).unique().scalars():
            found[item.id] = _info(item)
    return found


def invalidate(department_id: int | None = None) -> None:
    """Forget cached lookups for one department, or all when ``None``.

    Categories without a department are visible to every department, so a
    change to one of them clears everything.
    """

    with _lock:
        if department_id is None:
            _cache.clear()
        else:
            _cache.pop(department_id, None)


def clear() -> None:
    invalidate(None)
