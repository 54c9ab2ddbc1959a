from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..crud import areas as areas_crud
from ..crud import catalog as catalog_crud
from ..crud import departments as departments_crud
from ..db.session import get_db
from ..deps.auth import require_admin, require_super_admin, require_user
from ..models.catalog import Category, Item
from ..models.user import User
from ..schemas.catalog import (
    ArchivedGroup,
    AreaCreate,
    AreaOut,
    AreaUpdate,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    DepartmentIn,
    DepartmentOut,
    ItemAreasIn,
    ItemAreasOut,
    ItemCreate,
    ItemOut,
    ItemUpdate,
)
from ..services.access import ensure_department_access, ensure_super_admin, scoped_department_id

router = APIRouter(prefix="/api/v1", tags=["catalog"], dependencies=[Depends(require_user)])


def _listing_department(user: User, requested: Optional[int]) -> Optional[int]:
    if user.is_super_admin:
        return requested
    return scoped_department_id(user, requested)


def _ensure_category_access(user: User, category: Category) -> None:
    if category.department_id is None:
        ensure_super_admin(user)
    else:
        ensure_department_access(user, category.department_id)


def _ensure_item_access(user: User, item: Item) -> None:
    _ensure_category_access(user, item.category)


def _ensure_item_visible(user: User, item: Item) -> None:
    # Items of shared categories are visible to every department.
    if item.category.department_id is not None:
        ensure_department_access(user, item.category.department_id)


def _link_scope(user: User) -> Optional[int]:
    """Department whose area links ``user`` may see and replace; ``None`` means all."""

    return None if user.is_super_admin else scoped_department_id(user, None)


# ----- departments -----------------------------------------------------------


@router.get("/departments", response_model=list[DepartmentOut])
def api_list_departments(user: User = Depends(require_user), db: Session = Depends(get_db)):
    departments = departments_crud.list_departments(db)
    if user.is_super_admin:
        return departments
    return [department for department in departments if department.id == user.department_id]


@router.post("/departments", response_model=DepartmentOut, status_code=201)
def api_create_department(
    payload: DepartmentIn,
    _: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return departments_crud.create_department(db, payload.model_dump())


@router.put("/departments/{department_id}", response_model=DepartmentOut)
def api_update_department(
    department_id: int,
    payload: DepartmentIn,
    _: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    department = departments_crud.get_department(db, department_id)
    return departments_crud.update_department(db, department, payload.model_dump())


@router.delete("/departments/{department_id}")
def api_delete_department(
    department_id: int,
    _: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    department = departments_crud.get_department(db, department_id)
    removed = departments_crud.delete_department(db, department)
    return {"status": "deleted", "removed": removed}


# ----- areas -----------------------------------------------------------------


@router.get("/areas", response_model=list[AreaOut])
def api_list_areas(
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return areas_crud.list_areas(db, _listing_department(user, department_id))


@router.post("/areas", response_model=AreaOut, status_code=201)
def api_create_area(payload: AreaCreate, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["department_id"] = scoped_department_id(user, payload.department_id)
    return areas_crud.create_area(db, data)


@router.put("/areas/{area_id}", response_model=AreaOut)
def api_update_area(
    area_id: int,
    payload: AreaUpdate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return areas_crud.update_area(db, area, payload.model_dump(exclude_unset=True))


@router.delete("/areas/{area_id}")
def api_delete_area(area_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    areas_crud.delete_area(db, area)
    return {"status": "deleted"}


@router.get("/areas/{area_id}/items", response_model=list[int])
def api_area_items(area_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return catalog_crud.area_item_ids(db, area.id)


@router.put("/areas/{area_id}/items", response_model=list[int])
def api_set_area_items(
    area_id: int,
    item_ids: list[int] = Body(...),
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return catalog_crud.set_area_items(db, area, item_ids)


# ----- categories ------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryOut])
def api_list_categories(
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return catalog_crud.list_categories(db, _listing_department(user, department_id))


@router.post("/categories", response_model=CategoryOut, status_code=201)
def api_create_category(
    payload: CategoryCreate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    if not user.is_super_admin:
        data["department_id"] = scoped_department_id(user, payload.department_id)
    return catalog_crud.create_category(db, data)


@router.put("/categories/{category_id}", response_model=CategoryOut)
def api_update_category(
    category_id: int,
    payload: CategoryUpdate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = catalog_crud.get_category(db, category_id)
    _ensure_category_access(user, category)
    return catalog_crud.update_category(db, category, payload.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}")
def api_delete_category(category_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    category = catalog_crud.get_category(db, category_id)
    _ensure_category_access(user, category)
    catalog_crud.delete_category(db, category)
    return {"status": "deleted"}


# ----- items -----------------------------------------------------------------


@router.get("/items", response_model=list[ItemOut])
def api_list_items(
    department_id: Optional[int] = None,
    category_id: Optional[int] = None,
    include_deleted: bool = False,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return catalog_crud.list_items(
        db,
        _listing_department(user, department_id),
        category_id=category_id,
        include_deleted=include_deleted,
    )


@router.get("/items/archived", response_model=list[ArchivedGroup])
def api_archived_items(
    department_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    return catalog_crud.archived_items(db, dept, month=month, year=year)


@router.post("/items", response_model=ItemOut, status_code=201)
def api_create_item(payload: ItemCreate, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    category = catalog_crud.get_category(db, payload.category_id)
    _ensure_category_access(user, category)
    return catalog_crud.create_item(db, payload.model_dump())


@router.get("/items/{item_id}", response_model=ItemOut)
def api_get_item(item_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    item = catalog_crud.get_item(db, item_id)
    _ensure_item_visible(user, item)
    return item


@router.put("/items/{item_id}", response_model=ItemOut)
def api_update_item(
    item_id: int,
    payload: ItemUpdate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    item = catalog_crud.get_item(db, item_id)
    _ensure_item_access(user, item)
    if payload.category_id is not None:
        _ensure_category_access(user, catalog_crud.get_category(db, payload.category_id))
    return catalog_crud.update_item(db, item, payload.model_dump(exclude_unset=True))


@router.delete("/items/{item_id}")
def api_delete_item(item_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    item = catalog_crud.get_item(db, item_id)
    _ensure_item_access(user, item)
    archived = catalog_crud.delete_item(db, item)
    return {"status": "archived" if archived is not None else "deleted"}


@router.get("/items/{item_id}/areas", response_model=ItemAreasOut)
def api_item_areas(item_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    item = catalog_crud.get_item(db, item_id)
    _ensure_item_visible(user, item)
    return ItemAreasOut(item_id=item.id, area_ids=catalog_crud.item_area_ids(db, item.id, _link_scope(user)))


@router.put("/items/{item_id}/areas", response_model=ItemAreasOut)
def api_set_item_areas(
    item_id: int,
    payload: ItemAreasIn,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    item = catalog_crud.get_item(db, item_id)
    _ensure_item_visible(user, item)
    area_ids = catalog_crud.set_item_areas(db, item, payload.area_ids, department_id=_link_scope(user))
    return ItemAreasOut(item_id=item.id, area_ids=area_ids)
