from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..crud import areas as areas_crud
from ..db.session import get_db
from ..deps.auth import require_user
from ..models.user import User
from ..schemas.inventory import AreaSummaryLine, CompareGroup, InventoryPivot, MatrixLine
from ..services import matrix
from ..services.access import ensure_department_access, scoped_department_id

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"], dependencies=[Depends(require_user)])


@router.get("/matrix", response_model=InventoryPivot)
def api_inventory_pivot(
    department_id: Optional[int] = None,
    category: str = "all",
    area: str = "all",
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    lines = matrix.inventory_matrix(db, dept)
    return matrix.pivot(lines, department_id=dept, category=category, area=area)


@router.get("/matrix/lines", response_model=list[MatrixLine])
def api_inventory_lines(
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return matrix.inventory_matrix(db, scoped_department_id(user, department_id))


@router.get("/compare", response_model=list[CompareGroup])
def api_inventory_compare(
    department_id: Optional[int] = None,
    category: str = "all",
    areas: Optional[list[str]] = Query(default=None),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    lines = matrix.inventory_matrix(db, dept)
    return matrix.compare(db, dept, lines, areas=areas, category=category)


@router.get("/areas/{area_id}/summary", response_model=list[AreaSummaryLine])
def api_area_summary(area_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return matrix.area_summary(db, area)
