from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import users as users_crud
from ..db.session import get_db
from ..deps.auth import require_admin
from ..models.user import User
from ..schemas.users import UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("", response_model=list[UserOut])
def api_list_users(actor: User = Depends(require_admin), db: Session = Depends(get_db)):
    return users_crud.list_users(db, actor)


@router.post("", response_model=UserOut, status_code=201)
def api_create_user(payload: UserCreate, actor: User = Depends(require_admin), db: Session = Depends(get_db)):
    return users_crud.create_user(db, actor, payload.model_dump())


@router.put("/{user_id}", response_model=UserOut)
def api_update_user(
    user_id: int,
    payload: UserUpdate,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = users_crud.get_user(db, user_id)
    return users_crud.update_user(db, actor, user, payload.model_dump(exclude_unset=True))


@router.delete("/{user_id}")
def api_delete_user(user_id: int, actor: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = users_crud.get_user(db, user_id)
    users_crud.delete_user(db, actor, user)
    return {"status": "deleted"}
