"""Saved report projections over a single base table."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ReportColumn(BaseModel):
    """A projected column of a report."""

    column_name: str
    alias: str | None = None
    data_type: str | None = None
    visible: bool = True
    order_index: int = 0


class ReportFilter(BaseModel):
    """A stored filter; ``value`` is a scalar or a list (rendered as ``IN``)."""

    column_name: str
    operator: str = "="
    value: Any = None
    is_user_editable: bool = Field(False, alias="editable")
    order_index: int = 0

    model_config = {"populate_by_name": True}


class DrillTarget(BaseModel):
    """Drill-through link: parent row columns mapped onto target filter names."""

    target_report_id: int
    mapping: dict[str, str] = Field(default_factory=dict, alias="mapping_json")
    label: str | None = None

    model_config = {"populate_by_name": True}


class Report(BaseModel):
    """A saved report definition, independent of the fact/dimension model."""

    id: int
    connection_id: int
    owner_id: int | None = None
    name: str
    description: str | None = None
    base_table: str
    columns: list[ReportColumn] = []
    filters: list[ReportFilter] = []
    drill_targets: list[DrillTarget] = []

    @property
    def visible_columns(self) -> list[ReportColumn]:
        return sorted((c for c in self.columns if c.visible), key=lambda c: c.order_index)

    @property
    def known_columns(self) -> set[str]:
        """Every column name the report mentions (projected, hidden, or filtered)."""
        names = {c.column_name for c in self.columns}
        names.update(f.column_name for f in self.filters)
        return names
