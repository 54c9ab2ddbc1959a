from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import areas as areas_crud
from ..crud import records as records_crud
from ..crud import spot as spot_crud
from ..crud import thresholds as thresholds_crud
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.user import User
from ..schemas.counts import (
    RecordCreate,
    RecordDetail,
    RecordOut,
    SheetLine,
    SpotCreate,
    SpotOut,
    ThresholdOut,
    ThresholdSave,
)
from ..services.access import ensure_department_access, scoped_department_id

router = APIRouter(prefix="/api/v1", tags=["records"], dependencies=[Depends(require_user)])


# ----- records ---------------------------------------------------------------


@router.get("/records/sheet", response_model=list[SheetLine])
def api_count_sheet(
    area_id: int,
    category_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return records_crud.count_sheet(db, area, category_id)


@router.get("/records", response_model=list[RecordOut])
def api_list_records(
    department_id: Optional[int] = None,
    area_id: Optional[int] = None,
    limit: int = 200,
    offset: int = 0,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return records_crud.list_records(
        db, user, department_id=department_id, area_id=area_id, limit=limit, offset=offset
    )


@router.post("/records", response_model=RecordDetail, status_code=201)
def api_create_record(payload: RecordCreate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, payload.area_id)
    record = records_crud.create_record(
        db,
        area=area,
        user=user,
        inventory_date=payload.inventory_date,
        quantities=payload.quantities,
        category_id=payload.category_id,
    )
    return records_crud.record_detail(db, user, record.id)


@router.get("/records/{record_id}", response_model=RecordDetail)
def api_record_detail(record_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return records_crud.record_detail(db, user, record_id)


@router.delete("/records/{record_id}")
def api_delete_record(record_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    record = records_crud.get_record(db, record_id)
    records_crud.delete_record(db, user, record)
    return {"status": "deleted"}


# ----- spot counts -----------------------------------------------------------


@router.get("/spot", response_model=list[SpotOut])
def api_list_spots(
    area_id: Optional[int] = None,
    department_id: Optional[int] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    dept = scoped_department_id(user, department_id)
    return spot_crud.list_spots(db, dept, area_id=area_id)


@router.post("/spot", response_model=SpotOut, status_code=201)
def api_create_spot(payload: SpotCreate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, payload.area_id)
    spot = spot_crud.create_spot(
        db,
        area=area,
        user=user,
        inventory_date=payload.inventory_date,
        quantities=payload.quantities,
        note=payload.note,
    )
    return SpotOut(
        id=spot.id,
        department_id=spot.department_id,
        area_id=spot.area_id,
        inventory_date=spot.inventory_date,
        note=spot.note,
        created_at=spot.created_at,
        line_count=len(spot.items),
    )


@router.delete("/spot/{spot_id}")
def api_delete_spot(spot_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    spot = spot_crud.get_spot(db, spot_id)
    spot_crud.delete_spot(db, user, spot)
    return {"status": "deleted"}


# ----- thresholds ------------------------------------------------------------


@router.get("/thresholds", response_model=list[ThresholdOut])
def api_list_thresholds(area_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, area_id)
    ensure_department_access(user, area.department_id)
    return thresholds_crud.list_thresholds(db, area.id)


@router.put("/thresholds", response_model=list[ThresholdOut])
def api_save_thresholds(payload: ThresholdSave, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    area = areas_crud.get_area(db, payload.area_id)
    return thresholds_crud.save_thresholds(db, user, area, payload.expected)
