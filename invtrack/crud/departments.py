"""CRUD helpers for departments, including the cascading delete."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..core.errors import InvalidInput, NotFound
from ..core.logging import log_event
from ..models.area import Area
from ..models.catalog import AreaItem, Category, Item
from ..models.department import Department
from ..models.monthly import MonthlyInventory
from ..models.record import Record, RecordItem
from ..models.spot import SpotInventory, SpotInventoryItem
from ..models.threshold import Threshold
from ..models.user import User
from ..services import lookups

logger = logging.getLogger(__name__)


def _clean_name(value: object) -> str:
    name = (str(value) if value is not None else "").strip()
    if not name:
        raise InvalidInput("name is required")
    return name


def list_departments(db: Session) -> list[Department]:
    return db.execute(select(Department).order_by(Department.name)).scalars().all()


def get_department(db: Session, department_id: int) -> Department:
    department = db.get(Department, department_id)
    if department is None:
        raise NotFound("Department not found")
    return department


def create_department(db: Session, payload: dict) -> Department:
    department = Department(name=_clean_name(payload.get("name")))
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


def update_department(db: Session, department: Department, payload: dict) -> Department:
    if "name" in payload:
        department.name = _clean_name(payload.get("name"))
    db.commit()
    db.refresh(department)
    return department


def delete_department(db: Session, department: Department) -> dict[str, int]:
    """Remove a department and everything that only exists through it.

    Runs as one transaction; a failure anywhere rolls the whole delete back.
    Items are removed only when no other department's area still links them,
    and department categories only once no item uses them.
    Returns the number of rows removed per table.
    """

    dept_id = department.id
    counts: dict[str, int] = {}
    try:
        area_ids = db.execute(select(Area.id).where(Area.department_id == dept_id)).scalars().all()
        record_ids = (
            db.execute(select(Record.id).where(Record.area_id.in_(area_ids))).scalars().all()
            if area_ids
            else []
        )
        spot_ids = db.execute(
            select(SpotInventory.id).where(SpotInventory.department_id == dept_id)
        ).scalars().all()
        linked_item_ids = set(
            db.execute(select(AreaItem.item_id).where(AreaItem.area_id.in_(area_ids))).scalars().all()
            if area_ids
            else []
        )
        category_ids = db.execute(
            select(Category.id).where(Category.department_id == dept_id)
        ).scalars().all()

        def _run(label: str, stmt) -> None:
            counts[label] = db.execute(stmt.execution_options(synchronize_session=False)).rowcount or 0

        _run("monthly_inventories", delete(MonthlyInventory).where(MonthlyInventory.department_id == dept_id))
        if spot_ids:
            _run(
                "spot_inventory_items",
                delete(SpotInventoryItem).where(SpotInventoryItem.spot_inventory_id.in_(spot_ids)),
            )
            _run("spot_inventories", delete(SpotInventory).where(SpotInventory.id.in_(spot_ids)))
        if record_ids:
            _run("record_items", delete(RecordItem).where(RecordItem.record_id.in_(record_ids)))
            _run("records", delete(Record).where(Record.id.in_(record_ids)))
        if area_ids:
            _run("thresholds", delete(Threshold).where(Threshold.area_id.in_(area_ids)))
            _run("area_items", delete(AreaItem).where(AreaItem.area_id.in_(area_ids)))
            _run("areas", delete(Area).where(Area.id.in_(area_ids)))

        # Items of this department no longer linked anywhere, and not
        # referenced by another department's history.
        candidate_ids = set(linked_item_ids)
        if category_ids:
            candidate_ids.update(
                db.execute(select(Item.id).where(Item.category_id.in_(category_ids))).scalars().all()
            )
        orphan_ids = _unreferenced_items(db, candidate_ids)
        if orphan_ids:
            _run("thresholds_orphaned", delete(Threshold).where(Threshold.item_id.in_(orphan_ids)))
            _run("items", delete(Item).where(Item.id.in_(orphan_ids)))

        if category_ids:
            still_used = set(
                db.execute(select(Item.category_id).where(Item.category_id.in_(category_ids))).scalars().all()
            )
            unused = [cid for cid in category_ids if cid not in still_used]
            if unused:
                _run("categories", delete(Category).where(Category.id.in_(unused)))

        # Counts these users submitted for other departments keep their rows.
        user_ids = select(User.id).where(User.department_id == dept_id)
        for model in (Record, SpotInventory):
            db.execute(
                update(model)
                .where(model.user_id.in_(user_ids))
                .values(user_id=None)
                .execution_options(synchronize_session=False)
            )
        _run("users", delete(User).where(User.department_id == dept_id))
        _run("departments", delete(Department).where(Department.id == dept_id))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("department.delete_failed", extra={"extra_data": {"department_id": dept_id}})
        raise
    db.expire_all()
    lookups.invalidate(None)
    log_event(logger, "department.deleted", department_id=dept_id, **counts)
    return counts


def _unreferenced_items(db: Session, item_ids: set[int]) -> list[int]:
    if not item_ids:
        return []
    ids = list(item_ids)
    referenced: set[int] = set()
    for column in (
        AreaItem.item_id,
        RecordItem.item_id,
        SpotInventoryItem.item_id,
        MonthlyInventory.item_id,
    ):
        referenced.update(db.execute(select(column).where(column.in_(ids)).distinct()).scalars().all())
    return sorted(item_id for item_id in ids if item_id not in referenced)
