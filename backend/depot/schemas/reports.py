"""Pydantic schemas for generated reports and dashboard statistics."""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, model_validator


class ReportType(str, enum.Enum):
    STOCK = "stock"
    REQUEST = "request"
    DELIVERY = "delivery"
    USER = "user"


class ReportFormat(str, enum.Enum):
    JSON = "json"
    XLSX = "xlsx"
    PDF = "pdf"


# ── Reports ──────────────────────────────────────────────────────────────────

class ReportRequest(BaseModel):
    type: ReportType
    format: ReportFormat = ReportFormat.JSON
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def range_ordered(self) -> ReportRequest:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReportData(BaseModel):
    type: ReportType
    title: str
    subtitle: str
    columns: list[str]
    rows: list[list[str]]
    generated_at: datetime


class AsyncReportOut(BaseModel):
    task_id: str
    status: str = "queued"


# ── Statistics ───────────────────────────────────────────────────────────────

class OverallStats(BaseModel):
    projects: int
    active_projects: int
    materials: int
    warehouses: int
    requests: dict[str, int]
    deliveries: int
    low_stock_materials: int


class StatusCount(BaseModel):
    status: str
    count: int


class ProjectRequestRow(BaseModel):
    project_id: UUID
    name: str
    status: str
    total: int
    requests: dict[str, int]


class MaterialUsageRow(BaseModel):
    material_id: UUID
    code: str
    name: str
    uom_symbol: str
    delivered_qty: Decimal
    delivery_count: int


class StockLevelRow(BaseModel):
    material_id: UUID
    code: str
    name: str
    uom_symbol: str
    total_qty: Decimal
    reserved_qty: Decimal
    available_qty: Decimal
    min_stock_qty: Decimal
    level: str


class DeliveryPerformance(BaseModel):
    completed: int
    pending_requests: int
    average_lead_time_hours: float | None


class DailyMovementRow(BaseModel):
    day: str
    in_qty: Decimal
    out_qty: Decimal
