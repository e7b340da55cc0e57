"""Core semantic layer types: connections, facts, dimensions, mappings, KPIs."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class DialectName(StrEnum):
    POSTGRES = "postgres"
    MYSQL = "mysql"


class AggregationFunction(StrEnum):
    SUM = "SUM"
    AVG = "AVG"
    COUNT = "COUNT"
    MIN = "MIN"
    MAX = "MAX"
    MEDIAN = "MEDIAN"
    STDDEV = "STDDEV"
    VARIANCE = "VARIANCE"

    @classmethod
    def parse(cls, raw: str) -> AggregationFunction:
        """Case-insensitive lookup, raising ``ValueError`` on unknown names."""
        try:
            return cls(raw.strip().upper())
        except ValueError:
            allowed = ", ".join(a.value for a in cls)
            raise ValueError(
                f"Invalid aggregate function '{raw}'. Must be one of {allowed}"
            ) from None


class Connection(BaseModel):
    """An externally-hosted database the semantic layer is defined over.

    ``dialect`` is kept as a plain string: tags the registry does not know are
    rejected when a pool is built, not when the row is read.
    """

    id: int
    owner_id: int | None = None
    name: str = ""
    dialect: str = Field(alias="type")
    host: str = Field(alias="hostname")
    port: int
    database: str
    username: str
    password: str = Field(repr=False)
    selected_db: str | None = None  # default schema / search path
    command_timeout: int | None = None  # connect timeout override, milliseconds
    max_connections: int | None = Field(None, alias="max_transport_objects")

    model_config = {"populate_by_name": True}


class Fact(BaseModel):
    """A named measure: one column aggregated with one function."""

    id: int
    connection_id: int
    name: str
    table: str = Field(alias="table_name")
    column: str = Field(alias="column_name")
    aggregate_function: AggregationFunction = AggregationFunction.SUM

    model_config = {"populate_by_name": True}

    @field_validator("aggregate_function", mode="before")
    @classmethod
    def _upper(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class Dimension(BaseModel):
    """A named attribute column used for grouping."""

    id: int
    connection_id: int
    name: str
    table: str = Field(alias="table_name")
    column: str = Field(alias="column_name")

    model_config = {"populate_by_name": True}


class FactDimensionMapping(BaseModel):
    """Explicit equi-join edge between a fact's table and a dimension's table."""

    id: int | None = None
    fact_id: int
    dimension_id: int
    join_table: str
    fact_column: str
    dimension_column: str


class KPI(BaseModel):
    """A derived metric: an expression over fact names, e.g. ``Revenue - Cost``."""

    id: int
    connection_id: int
    name: str
    expression: str
    description: str | None = None
