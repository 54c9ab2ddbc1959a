from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text

from ..db.session import Base

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_STANDARD = "standard"
ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_STANDARD)


class User(Base):
    """Application account. ``department_id`` is null only for super admins."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(Text, nullable=False, unique=True, index=True)
    # bcrypt hash; legacy rows may still hold plaintext until their next login
    password = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default=ROLE_STANDARD)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    failed_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(Text, nullable=True)
    created_at = Column(Text, nullable=True)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_SUPER_ADMIN, ROLE_ADMIN)


__all__ = ["User", "ROLES", "ROLE_SUPER_ADMIN", "ROLE_ADMIN", "ROLE_STANDARD"]
