from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import InvalidInput
from ..core.logging import log_event
from ..models.area import Area
from ..models.threshold import Threshold
from ..models.user import User
from ..services.access import ensure_admin, ensure_department_access
from ..services.quantities import collect_quantities
from .records import sheet_items

logger = logging.getLogger(__name__)


def list_thresholds(db: Session, area_id: int) -> list[Threshold]:
    stmt = select(Threshold).where(Threshold.area_id == area_id).order_by(Threshold.item_id)
    return db.execute(stmt).scalars().all()


def thresholds_by_area(db: Session, area_ids: list[int]) -> dict[int, dict[int, int]]:
    """``{area_id: {item_id: expected_qty}}`` for the given areas."""

    result: dict[int, dict[int, int]] = {area_id: {} for area_id in area_ids}
    if not area_ids:
        return result
    rows = db.execute(
        select(Threshold.area_id, Threshold.item_id, Threshold.expected_qty).where(Threshold.area_id.in_(area_ids))
    ).all()
    for area_id, item_id, expected in rows:
        result[area_id][item_id] = int(expected or 0)
    return result


def save_thresholds(db: Session, actor: User, area: Area, expected: dict) -> list[Threshold]:
    """Upsert expected quantities for items on ``area``'s sheet.

    Blank inputs leave the stored value alone. All rows are written in one
    transaction keyed by ``(area_id, item_id)``.
    """

    ensure_admin(actor)
    ensure_department_access(actor, area.department_id)
    values = collect_quantities(sheet_items(db, area.id), expected or {}, blank_as_zero=False)
    if not values:
        raise InvalidInput("Enter at least one expected quantity")

    existing = {
        row.item_id: row
        for row in db.execute(
            select(Threshold).where(Threshold.area_id == area.id, Threshold.item_id.in_(list(values)))
        ).scalars()
    }
    try:
        for item_id, qty in values.items():
            row = existing.get(item_id)
            if row is None:
                db.add(Threshold(area_id=area.id, item_id=item_id, expected_qty=qty))
            else:
                row.expected_qty = qty
        db.commit()
    except Exception:
        db.rollback()
        raise
    log_event(logger, "thresholds.saved", area_id=area.id, rows=len(values))
    return list_thresholds(db, area.id)
