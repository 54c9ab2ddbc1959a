"""Department scoping rules shared by the API and the pages."""

from __future__ import annotations

from ..core.errors import AccessDenied, InvalidInput
from ..models.user import User


def scoped_department_id(user: User, requested: int | None) -> int:
    """Department ``user`` is acting on.

    Super admins must name one; everybody else is pinned to their own and
    naming another is refused.
    """

    if user.is_super_admin:
        if requested is None:
            raise InvalidInput("department_id is required")
        return int(requested)
    if user.department_id is None:
        raise AccessDenied("Account has no department")
    if requested is not None and int(requested) != user.department_id:
        raise AccessDenied("Access to another department is not allowed")
    return user.department_id


def ensure_department_access(user: User, department_id: int) -> None:
    if user.is_super_admin:
        return
    if user.department_id != department_id:
        raise AccessDenied("Access to another department is not allowed")


def ensure_admin(user: User) -> None:
    if not user.is_admin:
        raise AccessDenied("Administrator role required")


def ensure_super_admin(user: User) -> None:
    if not user.is_super_admin:
        raise AccessDenied("Super admin role required")
