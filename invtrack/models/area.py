from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Area(Base):
    """A physical location inside a department where counts happen."""

    __tablename__ = "areas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    department = relationship("Department", back_populates="areas")


__all__ = ["Area"]
