from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class SpotInventory(Base):
    """Ad-hoc, area-scoped count outside the monthly cycle."""

    __tablename__ = "spot_inventories"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    inventory_date = Column(Text, nullable=False)
    note = Column(Text, nullable=False, default="")
    created_at = Column(Text, nullable=False)

    items = relationship("SpotInventoryItem", back_populates="spot", cascade="all, delete-orphan")


class SpotInventoryItem(Base):
    __tablename__ = "spot_inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    spot_inventory_id = Column(Integer, ForeignKey("spot_inventories.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    qty = Column(Integer, nullable=False, default=0)

    spot = relationship("SpotInventory", back_populates="items")


__all__ = ["SpotInventory", "SpotInventoryItem"]
