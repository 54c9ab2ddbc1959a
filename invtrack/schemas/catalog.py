"""Schemas for departments, areas, categories and items."""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("name must not be blank")
    return cleaned


Name = Annotated[str, AfterValidator(_clean_name)]


class DepartmentIn(BaseModel):
    name: Name


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class AreaCreate(BaseModel):
    name: Name
    department_id: Optional[int] = None


class AreaUpdate(BaseModel):
    name: Optional[Name] = None


class AreaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    department_id: int


class CategoryCreate(BaseModel):
    name: Name
    department_id: Optional[int] = None
    tagged: bool = False


class CategoryUpdate(BaseModel):
    name: Optional[Name] = None
    tagged: Optional[bool] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    department_id: Optional[int] = None
    tagged: bool = False


class ItemCreate(BaseModel):
    name: Name
    category_id: int
    unit: Optional[str] = None
    vendor: Optional[str] = None
    article_number: Optional[str] = None


class ItemUpdate(BaseModel):
    name: Optional[Name] = None
    category_id: Optional[int] = None
    unit: Optional[str] = None
    vendor: Optional[str] = None
    article_number: Optional[str] = None


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category_id: int
    category_name: str = ""
    unit: Optional[str] = None
    vendor: Optional[str] = None
    article_number: Optional[str] = None
    is_valuable: bool = False
    deleted_at: Optional[str] = None


class ItemAreasIn(BaseModel):
    area_ids: list[int] = Field(default_factory=list)


class ItemAreasOut(BaseModel):
    item_id: int
    area_ids: list[int]


class ArchivedItemOut(BaseModel):
    id: int
    name: str
    category_name: str
    area_name: Optional[str] = None
    deleted_at: str


class ArchivedGroup(BaseModel):
    category_name: str
    items: list[ArchivedItemOut]
