"""Spot counts: partial, ad-hoc counts of an area outside the monthly cycle."""

from __future__ import annotations

import logging

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.dates import parse_date_only, utcnow_iso
from ..core.errors import InvalidInput, NotFound
from ..core.logging import log_event
from ..models.area import Area
from ..models.spot import SpotInventory, SpotInventoryItem
from ..models.user import User
from ..services.access import ensure_admin, ensure_department_access
from ..services.quantities import collect_quantities
from .records import sheet_items

logger = logging.getLogger(__name__)


def create_spot(
    db: Session,
    *,
    area: Area,
    user: User,
    inventory_date: object,
    quantities: dict,
    note: str = "",
) -> SpotInventory:
    """Store the entered quantities (0 included); blanks are not counted."""

    ensure_department_access(user, area.department_id)
    try:
        day = parse_date_only(inventory_date)
    except ValueError as exc:
        raise InvalidInput(str(exc)) from exc
    counted = collect_quantities(sheet_items(db, area.id), quantities or {}, blank_as_zero=False)
    if not counted:
        raise InvalidInput("Enter a quantity for at least one item")

    spot = SpotInventory(
        department_id=area.department_id,
        area_id=area.id,
        user_id=user.id,
        inventory_date=day,
        note=(note or "").strip(),
        created_at=utcnow_iso(),
    )
    spot.items = [SpotInventoryItem(item_id=item_id, qty=qty) for item_id, qty in counted.items()]
    db.add(spot)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(spot)
    log_event(logger, "spot.created", spot_id=spot.id, area_id=area.id, lines=len(counted))
    return spot


def list_spots(
    db: Session,
    department_id: int,
    *,
    area_id: int | None = None,
    limit: int = 100,
) -> list[dict]:
    lines = (
        select(SpotInventoryItem.spot_inventory_id, func.count(SpotInventoryItem.id).label("n"))
        .group_by(SpotInventoryItem.spot_inventory_id)
        .subquery()
    )
    stmt = (
        select(SpotInventory, func.coalesce(lines.c.n, 0))
        .outerjoin(lines, lines.c.spot_inventory_id == SpotInventory.id)
        .where(SpotInventory.department_id == department_id)
        .order_by(desc(SpotInventory.inventory_date), desc(SpotInventory.created_at), desc(SpotInventory.id))
        .limit(limit)
    )
    if area_id is not None:
        stmt = stmt.where(SpotInventory.area_id == area_id)
    return [
        {
            "id": spot.id,
            "department_id": spot.department_id,
            "area_id": spot.area_id,
            "inventory_date": spot.inventory_date,
            "note": spot.note or "",
            "created_at": spot.created_at,
            "line_count": count,
        }
        for spot, count in db.execute(stmt).all()
    ]


def get_spot(db: Session, spot_id: int) -> SpotInventory:
    spot = db.get(SpotInventory, spot_id)
    if spot is None:
        raise NotFound("Spot inventory not found")
    return spot


def delete_spot(db: Session, actor: User, spot: SpotInventory) -> None:
    ensure_admin(actor)
    ensure_department_access(actor, spot.department_id)
    try:
        db.delete(spot)
        db.commit()
    except Exception:
        db.rollback()
        raise
