from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint

from ..db.session import Base


class MonthlyInventory(Base):
    """Saved reconciliation snapshot line for one item in one period.

    Legacy imports left period header rows with a null ``item_id``; those are
    kept for history but never read as item quantities.
    """

    __tablename__ = "monthly_inventories"
    __table_args__ = (
        UniqueConstraint("department_id", "item_id", "month", "year", name="uq_monthly_dept_item_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=True, index=True)
    category_id = Column(Integer, nullable=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    qty_total = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=False, default="")
    updated_at = Column(Text, nullable=True)


__all__ = ["MonthlyInventory"]
