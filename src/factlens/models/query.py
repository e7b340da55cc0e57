"""Request shapes accepted by the semantic query service."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from factlens.models.semantic import AggregationFunction


class QueryFilter(BaseModel):
    """An equality filter on a dimension, applied in WHERE."""

    dimension_id: int = Field(alias="dimensionId")
    value: Any

    model_config = {"populate_by_name": True}


class FactQueryRequest(BaseModel):
    """Aggregate one or more facts, grouped by zero or more dimensions."""

    fact_ids: list[int] = Field(alias="factIds", min_length=1)
    dimension_ids: list[int] = Field([], alias="dimensionIds")
    aggregation: AggregationFunction | None = None
    filters: list[QueryFilter] = []

    model_config = {"populate_by_name": True}

    @field_validator("aggregation", mode="before")
    @classmethod
    def _upper(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class KpiQueryRequest(BaseModel):
    """Evaluate a KPI expression, grouped by zero or more dimensions."""

    kpi_id: int = Field(alias="kpiId")
    dimension_ids: list[int] = Field([], alias="dimensionIds")
    filters: list[QueryFilter] = []

    model_config = {"populate_by_name": True}


class DrillRequest(BaseModel):
    """A clicked row of a parent report, to be drilled into a target report."""

    target_report_id: int = Field(alias="targetReportId")
    row: dict[str, Any] = {}

    model_config = {"populate_by_name": True}
