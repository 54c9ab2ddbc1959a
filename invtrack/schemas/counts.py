"""Schemas for count sheets, records, spot counts and thresholds."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Browser forms send quantities as strings; blank means "not entered".
QtyInput = Union[int, float, str, None]


class SheetLine(BaseModel):
    item_id: int
    name: str
    category_id: int
    category_name: str
    unit: Optional[str] = None
    vendor: Optional[str] = None
    article_number: Optional[str] = None
    is_valuable: bool = False
    expected_qty: Optional[int] = None
    current_qty: Optional[int] = None


class RecordCreate(BaseModel):
    area_id: int
    inventory_date: str
    quantities: dict[int, QtyInput] = Field(default_factory=dict)
    category_id: Optional[int] = None


class RecordLineOut(BaseModel):
    item_id: int
    item_name: str
    category_name: str
    qty: int


class RecordOut(BaseModel):
    id: int
    area_id: int
    area: str
    inventory_date: str
    created_at: str
    user: Optional[str] = None
    line_count: int = 0


class RecordDetail(RecordOut):
    lines: list[RecordLineOut] = Field(default_factory=list)


class SpotCreate(BaseModel):
    area_id: int
    inventory_date: str
    quantities: dict[int, QtyInput] = Field(default_factory=dict)
    note: str = ""
    category_id: Optional[int] = None
    department_id: Optional[int] = None


class SpotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    department_id: int
    area_id: int
    inventory_date: str
    note: str
    created_at: str
    line_count: int = 0


class ThresholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    area_id: int
    item_id: int
    expected_qty: int


class ThresholdSave(BaseModel):
    area_id: int
    expected: dict[int, QtyInput] = Field(default_factory=dict)
