"""API request/response Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from factlens.models.query import FactQueryRequest, KpiQueryRequest
from factlens.models.semantic import FactDimensionMapping


class ResolvedInfoResponse(BaseModel):
    """Information about what was resolved during compilation."""

    base_table: str = ""
    tables: list[str] = []
    dimensions: list[str] = []
    measures: list[str] = []


class QueryResultResponse(BaseModel):
    """Rows plus the SQL that produced them."""

    sql: str
    dialect: str
    rows: list[dict[str, Any]] = []
    params: dict[str, Any] = {}
    resolved: ResolvedInfoResponse = ResolvedInfoResponse()
    warnings: list[str] = []
    sql_valid: bool = True


class FactQueryBody(FactQueryRequest):
    """Request body for POST /queries/facts."""

    connection_id: int = Field(alias="connectionId")


class KpiQueryBody(KpiQueryRequest):
    """Request body for POST /queries/kpi."""

    connection_id: int = Field(alias="connectionId")


class DrillTargetResponse(BaseModel):
    target_report_id: int
    label: str | None = None
    mapping: dict[str, str] = {}


class DrillConfigResponse(BaseModel):
    """Response for GET /reports/{id}/drill-config."""

    report_id: int
    targets: list[DrillTargetResponse] = []


class AutoMapResponse(BaseModel):
    """Response for POST /connections/{id}/auto-map."""

    created: list[FactDimensionMapping] = []
    skipped: int = 0
    failures: list[str] = []


class TableListResponse(BaseModel):
    tables: list[str] = []


class ColumnListResponse(BaseModel):
    table: str
    columns: list[str] = []


class DialectInfo(BaseModel):
    """Information about a supported dialect."""

    name: str
    capabilities: dict[str, bool] = {}


class DialectListResponse(BaseModel):
    """Response for GET /dialects."""

    dialects: list[DialectInfo] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = ""
    pools: int = 0
