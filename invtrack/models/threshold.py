from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint

from ..db.session import Base


class Threshold(Base):
    """Expected quantity of an item in an area (reorder/reference baseline)."""

    __tablename__ = "thresholds"
    __table_args__ = (UniqueConstraint("area_id", "item_id", name="uq_thresholds_area_item"),)

    id = Column(Integer, primary_key=True, index=True)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    expected_qty = Column(Integer, nullable=False, default=0)


__all__ = ["Threshold"]
