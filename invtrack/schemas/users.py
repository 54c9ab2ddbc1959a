from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["super_admin", "admin", "standard"]


class UserCreate(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Role = "standard"
    department_id: Optional[int] = None


class UserUpdate(BaseModel):
    username: Optional[str] = None
    # blank keeps the current password
    password: Optional[str] = None
    role: Optional[Role] = None
    department_id: Optional[int] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: Role
    department_id: Optional[int] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str
