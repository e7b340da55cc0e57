"""Pydantic domain models for the FactLens semantic layer."""

from factlens.models.errors import ErrorDetail, FactlensError, InvalidReferenceError
from factlens.models.query import DrillRequest, FactQueryRequest, KpiQueryRequest, QueryFilter
from factlens.models.report import DrillTarget, Report, ReportColumn, ReportFilter
from factlens.models.semantic import (
    KPI,
    AggregationFunction,
    Connection,
    DialectName,
    Dimension,
    Fact,
    FactDimensionMapping,
)

__all__ = [
    "KPI",
    "AggregationFunction",
    "Connection",
    "DialectName",
    "Dimension",
    "DrillRequest",
    "DrillTarget",
    "ErrorDetail",
    "Fact",
    "FactDimensionMapping",
    "FactQueryRequest",
    "FactlensError",
    "InvalidReferenceError",
    "KpiQueryRequest",
    "QueryFilter",
    "Report",
    "ReportColumn",
    "ReportFilter",
]
