from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.user import User
from ..schemas.inventory import (
    Dashboard,
    MonthlyHistory,
    MonthlyReconciliation,
    MonthlySave,
    MonthlySaveResult,
)
from ..services import dashboard, reconciliation
from ..services.access import scoped_department_id

router = APIRouter(prefix="/api/v1", tags=["monthly"], dependencies=[Depends(require_user)])


@router.get("/monthly", response_model=MonthlyReconciliation)
def api_reconcile(
    month: int = Query(ge=1, le=12),
    year: int = Query(ge=1900),
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    return reconciliation.reconcile(db, dept, month, year)


@router.post("/monthly", response_model=MonthlySaveResult)
def api_save_monthly(payload: MonthlySave, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    dept = scoped_department_id(user, payload.department_id)
    return reconciliation.save_snapshot(db, dept, payload.month, payload.year, payload.notes)


@router.get("/monthly/history", response_model=MonthlyHistory)
def api_monthly_history(
    month: int = Query(ge=1, le=12),
    year: int = Query(ge=1900),
    periods: int = Query(default=3, ge=1, le=settings.HISTORY_MAX_PERIODS),
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    return reconciliation.compare_history(db, dept, month, year, periods)


@router.get("/dashboard", response_model=Dashboard)
def api_dashboard(
    department_id: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = None,
    item_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    return dashboard.build_dashboard(db, dept, month=month, year=year, item_id=item_id)
