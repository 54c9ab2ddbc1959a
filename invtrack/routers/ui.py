"""Server-rendered pages.

Every page needs a logged-in session; a 401 from ``require_user`` is turned
into a redirect to ``/login`` by the exception handler. Super admins pick the
department they work on with ``?department_id=``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.dates import MONTH_LABELS, today_date_only
from ..core.errors import InvalidInput, InventoryError
from ..core.jinja import get_templates
from ..crud import areas as areas_crud
from ..crud import catalog as catalog_crud
from ..crud import departments as departments_crud
from ..crud import records as records_crud
from ..crud import spot as spot_crud
from ..crud import thresholds as thresholds_crud
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.user import User
from ..services import dashboard, matrix, reconciliation
from ..services.access import ensure_department_access, scoped_department_id

templates = get_templates()

router = APIRouter(dependencies=[Depends(require_user)])


def _department(user: User, requested: Optional[int]) -> Optional[int]:
    """Selected department, or ``None`` while a super admin has not chosen one."""

    if user.is_super_admin and requested is None:
        return None
    return scoped_department_id(user, requested)


def _render(request: Request, template: str, user: User, db: Session, context: dict, status_code: int = 200):
    base = {
        "user": user,
        "departments": departments_crud.list_departments(db) if user.is_super_admin else [],
        "month_labels": MONTH_LABELS,
        "error": "",
        "message": "",
    }
    base.update(context)
    return templates.TemplateResponse(request, template, base, status_code=status_code)


def _prefixed(form, prefix: str) -> dict[int, str]:
    values: dict[int, str] = {}
    for key, value in form.items():
        if key.startswith(prefix):
            try:
                values[int(key[len(prefix):])] = value
            except ValueError:
                continue
    return values


def _optional_int(value, field: str = "value") -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{field} must be a whole number") from exc


def _with_dept(url: str, department_id: Optional[int]) -> str:
    if department_id is None:
        return url
    joiner = "&" if "?" in url else "?"
    return f"{url}{joiner}department_id={department_id}"


# ----- count sheet -----------------------------------------------------------


def _sheet_context(db: Session, dept: Optional[int], area_id: Optional[int], category_id: Optional[int]) -> dict:
    areas = areas_crud.list_areas(db, dept) if dept is not None else []
    area = next((a for a in areas if a.id == area_id), None)
    return {
        "department_id": dept,
        "areas": areas,
        "area": area,
        "categories": catalog_crud.list_categories(db, dept) if dept is not None else [],
        "category_id": category_id,
        "lines": records_crud.count_sheet(db, area, category_id) if area is not None else [],
        "today": today_date_only(),
        "entered": {},
    }


@router.get("/", response_class=HTMLResponse)
def sheet_page(
    request: Request,
    department_id: Optional[int] = None,
    area_id: Optional[int] = None,
    category_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    return _render(request, "sheet.html", user, db, _sheet_context(db, dept, area_id, category_id))


@router.post("/", response_class=HTMLResponse)
async def sheet_submit(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    form = await request.form()
    area_id = _optional_int(form.get("area_id"), "area_id")
    category_id = _optional_int(form.get("category_id"), "category_id")
    quantities = _prefixed(form, "qty_")
    area = areas_crud.get_area(db, area_id) if area_id else None
    requested = _optional_int(form.get("department_id"), "department_id")
    dept = area.department_id if area is not None else _department(user, requested)
    try:
        if area is None:
            raise InvalidInput("Choose an area first")
        record = records_crud.create_record(
            db,
            area=area,
            user=user,
            inventory_date=form.get("inventory_date"),
            quantities=quantities,
            category_id=category_id,
        )
    except InventoryError as exc:
        context = _sheet_context(db, dept, area_id, category_id)
        context.update({"error": exc.message, "entered": quantities, "today": form.get("inventory_date") or context["today"]})
        return _render(request, "sheet.html", user, db, context, status_code=422)
    return RedirectResponse(url=_with_dept(f"/records?record_id={record.id}", dept if user.is_super_admin else None), status_code=303)


# ----- records ---------------------------------------------------------------


@router.get("/records", response_class=HTMLResponse)
def records_page(
    request: Request,
    department_id: Optional[int] = None,
    record_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    detail = records_crud.record_detail(db, user, record_id) if record_id else None
    rows = records_crud.list_records(db, user, department_id=dept)
    return _render(request, "records.html", user, db, {"department_id": dept, "records": rows, "detail": detail})


@router.post("/records/{record_id}/delete")
def records_delete(record_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    record = records_crud.get_record(db, record_id)
    dept = record.area.department_id
    records_crud.delete_record(db, user, record)
    return RedirectResponse(url=_with_dept("/records", dept if user.is_super_admin else None), status_code=303)


# ----- inventory -------------------------------------------------------------


@router.get("/inventory", response_class=HTMLResponse)
def inventory_page(
    request: Request,
    department_id: Optional[int] = None,
    category: str = "all",
    area: str = "all",
    compare: Optional[list[str]] = Query(default=None),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    context: dict = {"department_id": dept, "category": category, "area": area, "pivot": None, "compare": []}
    if dept is not None:
        lines = matrix.inventory_matrix(db, dept)
        context["pivot"] = matrix.pivot(lines, department_id=dept, category=category, area=area)
        context["compare_areas"] = compare or context["pivot"].areas
        context["compare"] = matrix.compare(db, dept, lines, areas=context["compare_areas"], category=category)
    return _render(request, "inventory.html", user, db, context)


# ----- thresholds ------------------------------------------------------------


def _threshold_context(db: Session, dept: Optional[int], area_id: Optional[int]) -> dict:
    areas = areas_crud.list_areas(db, dept) if dept is not None else []
    area = next((a for a in areas if a.id == area_id), None)
    return {
        "department_id": dept,
        "areas": areas,
        "area": area,
        "lines": records_crud.count_sheet(db, area) if area is not None else [],
        "entered": {},
    }


@router.get("/thresholds", response_class=HTMLResponse)
def thresholds_page(
    request: Request,
    department_id: Optional[int] = None,
    area_id: Optional[int] = None,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    return _render(request, "thresholds.html", user, db, _threshold_context(db, dept, area_id))


@router.post("/thresholds", response_class=HTMLResponse)
async def thresholds_submit(request: Request, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    form = await request.form()
    area = areas_crud.get_area(db, _optional_int(form.get("area_id"), "area_id") or 0)
    expected = _prefixed(form, "expected_")
    try:
        thresholds_crud.save_thresholds(db, user, area, expected)
    except InventoryError as exc:
        context = _threshold_context(db, area.department_id, area.id)
        context.update({"error": exc.message, "entered": expected})
        return _render(request, "thresholds.html", user, db, context, status_code=422)
    context = _threshold_context(db, area.department_id, area.id)
    context["message"] = "Thresholds saved."
    return _render(request, "thresholds.html", user, db, context)


# ----- spot counts -----------------------------------------------------------


def _spot_context(db: Session, dept: Optional[int], area_id: Optional[int]) -> dict:
    areas = areas_crud.list_areas(db, dept) if dept is not None else []
    area = next((a for a in areas if a.id == area_id), None)
    return {
        "department_id": dept,
        "areas": areas,
        "area": area,
        "summary": matrix.area_summary(db, area) if area is not None else [],
        "spots": spot_crud.list_spots(db, dept, area_id=area_id) if dept is not None else [],
        "today": today_date_only(),
        "entered": {},
        "note": "",
    }


@router.get("/spot", response_class=HTMLResponse)
def spot_page(
    request: Request,
    department_id: Optional[int] = None,
    area_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    return _render(request, "spot.html", user, db, _spot_context(db, dept, area_id))


@router.post("/spot", response_class=HTMLResponse)
async def spot_submit(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    form = await request.form()
    area = areas_crud.get_area(db, _optional_int(form.get("area_id"), "area_id") or 0)
    ensure_department_access(user, area.department_id)
    quantities = _prefixed(form, "qty_")
    note = str(form.get("note") or "")
    try:
        spot_crud.create_spot(
            db,
            area=area,
            user=user,
            inventory_date=form.get("inventory_date"),
            quantities=quantities,
            note=note,
        )
    except InventoryError as exc:
        context = _spot_context(db, area.department_id, area.id)
        context.update({"error": exc.message, "entered": quantities, "note": note})
        return _render(request, "spot.html", user, db, context, status_code=422)
    context = _spot_context(db, area.department_id, area.id)
    context["message"] = "Spot count saved."
    return _render(request, "spot.html", user, db, context)


# ----- monthly ---------------------------------------------------------------


def _monthly_context(
    db: Session,
    dept: Optional[int],
    month: int,
    year: int,
    periods: Optional[int],
    notes: Optional[dict[int, str]] = None,
) -> dict:
    context: dict = {
        "department_id": dept,
        "month": month,
        "year": year,
        "periods": periods,
        "max_periods": settings.HISTORY_MAX_PERIODS,
        "result": None,
        "history": None,
        "missing": [],
    }
    if dept is None:
        return context
    context["result"] = reconciliation.reconcile(db, dept, month, year, notes=notes)
    if periods:
        context["history"] = reconciliation.compare_history(db, dept, month, year, periods)
    return context


@router.get("/monthly", response_class=HTMLResponse)
def monthly_page(
    request: Request,
    department_id: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = None,
    periods: Optional[int] = Query(default=None, ge=1, le=settings.HISTORY_MAX_PERIODS),
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    today = date.today()
    dept = _department(user, department_id)
    context = _monthly_context(db, dept, month or today.month, year or today.year, periods)
    return _render(request, "monthly.html", user, db, context)


@router.post("/monthly", response_class=HTMLResponse)
async def monthly_submit(request: Request, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    form = await request.form()
    dept = scoped_department_id(user, _optional_int(form.get("department_id"), "department_id"))
    month = _optional_int(form.get("month"), "month") or 0
    year = _optional_int(form.get("year"), "year") or 0
    notes = _prefixed(form, "note_")
    try:
        saved = reconciliation.save_snapshot(db, dept, month, year, notes)
    except InventoryError as exc:
        context = _monthly_context(db, dept, month, year, None, notes=notes)
        missing = (exc.details or {}).get("item_ids", []) if isinstance(exc.details, dict) else []
        context.update({"error": exc.message, "missing": missing})
        return _render(request, "monthly.html", user, db, context, status_code=422)
    context = _monthly_context(db, dept, month, year, None)
    context["message"] = f"Monthly inventory saved ({saved.saved_rows} items)."
    return _render(request, "monthly.html", user, db, context)


# ----- archived / dashboard -------------------------------------------------


@router.get("/archived", response_class=HTMLResponse)
def archived_page(
    request: Request,
    department_id: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = None,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    groups = catalog_crud.archived_items(db, dept, month=month, year=year) if dept is not None else []
    return _render(
        request,
        "archived.html",
        user,
        db,
        {"department_id": dept, "groups": groups, "month": month, "year": year},
    )


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard_page(
    request: Request,
    department_id: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = None,
    item_id: Optional[int] = None,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    dept = _department(user, department_id)
    today = date.today()
    data = None
    items = []
    if dept is not None:
        data = dashboard.build_dashboard(db, dept, month=month, year=year, item_id=item_id)
        items = catalog_crud.list_items(db, dept)
    return _render(
        request,
        "dashboard.html",
        user,
        db,
        {
            "department_id": dept,
            "data": data,
            "items": items,
            "month": month or today.month,
            "year": year or today.year,
            "item_id": item_id,
        },
    )
