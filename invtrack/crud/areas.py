from __future__ import annotations

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session

from ..core.errors import InvalidInput, NotFound
from ..models.area import Area
from ..models.catalog import AreaItem
from ..models.department import Department
from ..models.record import Record
from ..models.spot import SpotInventory
from ..models.threshold import Threshold
from ..services import lookups


def list_areas(db: Session, department_id: int | None = None) -> list[Area]:
    stmt = select(Area).order_by(Area.name, Area.id)
    if department_id is not None:
        stmt = stmt.where(Area.department_id == department_id)
    return db.execute(stmt).scalars().all()


def get_area(db: Session, area_id: int) -> Area:
    area = db.get(Area, area_id)
    if area is None:
        raise NotFound("Area not found")
    return area


def create_area(db: Session, payload: dict) -> Area:
    name = (payload.get("name") or "").strip()
    if not name:
        raise InvalidInput("name is required")
    department_id = payload.get("department_id")
    if not department_id or db.get(Department, department_id) is None:
        raise InvalidInput("a valid department is required")
    area = Area(name=name, department_id=department_id)
    db.add(area)
    db.commit()
    db.refresh(area)
    lookups.invalidate(area.department_id)
    return area


def update_area(db: Session, area: Area, payload: dict) -> Area:
    if payload.get("name") is not None:
        name = str(payload["name"]).strip()
        if not name:
            raise InvalidInput("name is required")
        area.name = name
    db.commit()
    db.refresh(area)
    lookups.invalidate(area.department_id)
    return area


def delete_area(db: Session, area: Area) -> None:
    """Delete an area that has no count history; its links and thresholds go with it."""

    has_history = db.execute(
        select(
            exists().where(Record.area_id == area.id)
            | exists().where(SpotInventory.area_id == area.id)
        )
    ).scalar()
    if has_history:
        raise InvalidInput("Area has count records and cannot be deleted")
    department_id = area.department_id
    try:
        db.execute(delete(Threshold).where(Threshold.area_id == area.id))
        db.execute(delete(AreaItem).where(AreaItem.area_id == area.id))
        db.delete(area)
        db.commit()
    except Exception:
        db.rollback()
        raise
    lookups.invalidate(department_id)
