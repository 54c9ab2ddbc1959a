"""Categories, items and the area/item assignment table."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class Category(Base):
    """Item grouping. A tagged category marks its items as individually tracked."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    # null on legacy rows created before categories were department scoped
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    tagged = Column(Boolean, nullable=False, default=False)


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    unit = Column(Text, nullable=True)
    vendor = Column(Text, nullable=True)
    article_number = Column(Text, nullable=True, index=True)
    deleted_at = Column(Text, nullable=True)
    created_at = Column(Text, nullable=True)

    category = relationship("Category", lazy="joined")

    @property
    def is_valuable(self) -> bool:
        # Always derived from the category so re-tagging a category applies at once.
        return bool(self.category is not None and self.category.tagged)

    @property
    def category_name(self) -> str:
        return self.category.name if self.category is not None else ""

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class AreaItem(Base):
    """An item only shows on an area's count sheet when linked here."""

    __tablename__ = "area_items"
    __table_args__ = (UniqueConstraint("area_id", "item_id", name="uq_area_items_area_item"),)

    id = Column(Integer, primary_key=True, index=True)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)


__all__ = ["Category", "Item", "AreaItem"]
