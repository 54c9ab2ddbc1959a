from __future__ import annotations

from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Department(Base):
    """Top-level tenant: areas, users and most categories hang off a department."""

    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)

    areas = relationship("Area", back_populates="department", order_by="Area.name")


__all__ = ["Department"]
