"""Read models produced by the matrix, reconciliation and dashboard services."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

RowStatus = Literal["shortage", "unchanged", "new", "surplus"]


class MatrixLine(BaseModel):
    area_id: int
    area: str
    item_id: int
    category: str
    item: str
    unit: Optional[str] = None
    vendor: Optional[str] = None
    article_number: Optional[str] = None
    qty: int


class PivotRow(BaseModel):
    item_id: int
    category: str
    vendor: str
    item: str
    article_number: Optional[str] = None
    areas: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    shown_total: int = 0


class PivotGroup(BaseModel):
    category: str
    rows: list[PivotRow]


class InventoryPivot(BaseModel):
    department_id: int
    areas: list[str]
    displayed_areas: list[str]
    categories: list[str]
    groups: list[PivotGroup]


class CompareCell(BaseModel):
    qty: int = 0
    expected: int = 0
    status: Literal["below", "at", "above"] = "at"


class CompareRow(BaseModel):
    item_id: int
    category: str
    vendor: str
    item: str
    article_number: Optional[str] = None
    by_area: dict[str, CompareCell] = Field(default_factory=dict)


class CompareGroup(BaseModel):
    category: str
    rows: list[CompareRow]


class AreaSummaryLine(BaseModel):
    item_id: int
    item: str
    category: str
    qty: int
    source: Literal["record", "spot", "none"]
    note: str = ""


class MonthlyRow(BaseModel):
    category_id: int
    category_name: str
    item_id: int
    item_name: str
    item_number: Optional[str] = None
    qty_current_total: int
    qty_prev_total: int
    diff: int
    status: RowStatus
    notes: str = ""

    @property
    def needs_note(self) -> bool:
        return self.diff != 0


class MonthlyGroup(BaseModel):
    category_id: int
    category_name: str
    delta: int
    items: list[MonthlyRow]


class MonthlyReconciliation(BaseModel):
    department_id: int
    month: int
    year: int
    previous_month: int
    previous_year: int
    rows: list[MonthlyRow]
    groups: list[MonthlyGroup]
    saved: bool = False


class MonthlySave(BaseModel):
    department_id: Optional[int] = None
    month: int = Field(ge=1, le=12)
    year: int
    notes: dict[int, str] = Field(default_factory=dict)


class MonthlySaveResult(BaseModel):
    department_id: int
    month: int
    year: int
    saved_rows: int


class HistoryPeriod(BaseModel):
    month: int
    year: int
    label: str


class HistoryRow(BaseModel):
    category_name: str
    item_id: int
    item_name: str
    item_number: Optional[str] = None
    qty_current_total: int
    by_period: dict[str, int] = Field(default_factory=dict)
    notes: str = ""


class MonthlyHistory(BaseModel):
    department_id: int
    month: int
    year: int
    periods: list[HistoryPeriod]
    rows: list[HistoryRow]


class DashboardKpis(BaseModel):
    areas: int
    categories: int
    items: int
    records_last_30_days: int
    last_saved: Optional[str] = None


class SeriesPoint(BaseModel):
    label: str
    value: int


class NamedCount(BaseModel):
    name: str
    count: int


class LowStockRow(BaseModel):
    item_id: int
    item_name: str
    expected: int
    current: int
    deficit: int


class Dashboard(BaseModel):
    department_id: int
    kpis: DashboardKpis
    activity: list[SeriesPoint]
    records_by_user: list[NamedCount]
    records_by_area: list[NamedCount]
    low_stock: list[LowStockRow]
    item_series: list[SeriesPoint] = Field(default_factory=list)
    series_item_id: Optional[int] = None
