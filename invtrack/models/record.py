from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Record(Base):
    """One count submission for one area.

    ``inventory_date`` is the calendar day the count refers to (``YYYY-MM-DD``);
    ``created_at`` is when it was saved and breaks ties between same-day counts.
    """

    __tablename__ = "records"

    id = Column(Integer, primary_key=True, index=True)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    inventory_date = Column(Text, nullable=False, index=True)
    created_at = Column(Text, nullable=False)

    area = relationship("Area", lazy="joined")
    user = relationship("User", lazy="joined")
    items = relationship("RecordItem", back_populates="record", cascade="all, delete-orphan")


class RecordItem(Base):
    __tablename__ = "record_items"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(Integer, ForeignKey("records.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    qty = Column(Integer, nullable=False, default=0)

    record = relationship("Record", back_populates="items")
    item = relationship("Item", lazy="joined")


__all__ = ["Record", "RecordItem"]
