"""SQLAlchemy Core reader over the relational metadata store.

Table definitions mirror the metadata store's schema; creating or migrating
that schema is the store's own job.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Engine,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    insert,
    select,
)

from factlens.models.report import DrillTarget, Report, ReportColumn, ReportFilter
from factlens.models.semantic import KPI, Connection, Dimension, Fact, FactDimensionMapping
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger(__name__)

metadata = MetaData()

connections = Table(
    "connections",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, nullable=False),
    Column("connection_name", String, nullable=False, unique=True),
    Column("type", String, nullable=False),
    Column("hostname", String, nullable=False),
    Column("port", Integer, nullable=False),
    Column("database", String, nullable=False),
    Column("command_timeout", Integer),
    Column("max_transport_objects", Integer),
    Column("username", String, nullable=False),
    Column("password", String, nullable=False),
    Column("selected_db", String),
)

facts = Table(
    "facts",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("connection_id", Integer, ForeignKey("connections.id"), nullable=False),
    Column("name", String, nullable=False),
    Column("table_name", String, nullable=False),
    Column("column_name", String, nullable=False),
    Column("aggregate_function", String, nullable=False),
)

dimensions = Table(
    "dimensions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("connection_id", Integer, ForeignKey("connections.id"), nullable=False),
    Column("name", String, nullable=False),
    Column("table_name", String, nullable=False),
    Column("column_name", String, nullable=False),
)

fact_dimensions = Table(
    "fact_dimensions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("fact_id", Integer, ForeignKey("facts.id"), nullable=False),
    Column("dimension_id", Integer, ForeignKey("dimensions.id"), nullable=False),
    Column("join_table", String, nullable=False),
    Column("fact_column", String, nullable=False),
    Column("dimension_column", String, nullable=False),
    UniqueConstraint("fact_id", "dimension_id"),
)

kpis = Table(
    "kpis",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("connection_id", Integer, ForeignKey("connections.id"), nullable=False),
    Column("name", String, nullable=False),
    Column("expression", Text, nullable=False),
    Column("description", Text),
)

reports = Table(
    "reports",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer),
    Column("connection_id", Integer, ForeignKey("connections.id"), nullable=False),
    Column("name", String, nullable=False),
    Column("description", Text),
    Column("base_table", String, nullable=False),
)

report_columns = Table(
    "report_columns",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("report_id", Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False),
    Column("column_name", String, nullable=False),
    Column("alias", String),
    Column("data_type", String),
    Column("visible", Boolean, default=True),
    Column("order_index", Integer, default=0),
)

report_filters = Table(
    "report_filters",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("report_id", Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False),
    Column("column_name", String, nullable=False),
    Column("operator", String, nullable=False),
    Column("value", Text),  # JSON-encoded scalar or list
    Column("is_user_editable", Boolean, default=False),
    Column("order_index", Integer, default=0),
)

report_drillthrough = Table(
    "report_drillthrough",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "parent_report_id", Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    ),
    Column("target_report_id", Integer, ForeignKey("reports.id"), nullable=False),
    Column("mapping_json", Text),
    Column("label", String),
)


def _decode_json(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Legacy rows stored bare strings
        return raw


def _connection_from_row(row: Any) -> Connection:
    m = row._mapping
    return Connection(
        id=m["id"],
        owner_id=m["user_id"],
        name=m["connection_name"],
        dialect=m["type"],
        host=m["hostname"],
        port=m["port"],
        database=m["database"],
        username=m["username"],
        password=m["password"],
        selected_db=m["selected_db"] or None,
        command_timeout=m["command_timeout"],
        max_connections=m["max_transport_objects"],
    )


class SqlMetadataRepository(MetadataRepository):
    """Reads semantic layer metadata through a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def from_url(cls, url: str) -> SqlMetadataRepository:
        return cls(create_engine(url, pool_pre_ping=True))

    @property
    def engine(self) -> Engine:
        return self._engine

    def get_connection(self, connection_id: int) -> Connection | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(connections).where(connections.c.id == connection_id)
            ).first()
        return _connection_from_row(row) if row is not None else None

    def list_facts(self, connection_id: int) -> list[Fact]:
        stmt = (
            select(facts).where(facts.c.connection_id == connection_id).order_by(facts.c.id)
        )
        with self._engine.connect() as conn:
            return [Fact.model_validate(dict(r._mapping)) for r in conn.execute(stmt)]

    def get_facts(self, connection_id: int, fact_ids: list[int]) -> list[Fact]:
        if not fact_ids:
            return []
        stmt = select(facts).where(
            facts.c.connection_id == connection_id, facts.c.id.in_(fact_ids)
        )
        with self._engine.connect() as conn:
            by_id = {r.id: Fact.model_validate(dict(r._mapping)) for r in conn.execute(stmt)}
        return [by_id[fid] for fid in dict.fromkeys(fact_ids) if fid in by_id]

    def list_dimensions(self, connection_id: int) -> list[Dimension]:
        stmt = (
            select(dimensions)
            .where(dimensions.c.connection_id == connection_id)
            .order_by(dimensions.c.id)
        )
        with self._engine.connect() as conn:
            return [Dimension.model_validate(dict(r._mapping)) for r in conn.execute(stmt)]

    def get_dimensions(self, connection_id: int, dimension_ids: list[int]) -> list[Dimension]:
        if not dimension_ids:
            return []
        stmt = select(dimensions).where(
            dimensions.c.connection_id == connection_id, dimensions.c.id.in_(dimension_ids)
        )
        with self._engine.connect() as conn:
            by_id = {
                r.id: Dimension.model_validate(dict(r._mapping)) for r in conn.execute(stmt)
            }
        return [by_id[did] for did in dict.fromkeys(dimension_ids) if did in by_id]

    def list_mappings(
        self, fact_ids: list[int], dimension_ids: list[int] | None = None
    ) -> list[FactDimensionMapping]:
        if not fact_ids:
            return []
        stmt = select(fact_dimensions).where(fact_dimensions.c.fact_id.in_(fact_ids))
        if dimension_ids is not None:
            stmt = stmt.where(fact_dimensions.c.dimension_id.in_(dimension_ids))
        with self._engine.connect() as conn:
            return [
                FactDimensionMapping.model_validate(dict(r._mapping))
                for r in conn.execute(stmt.order_by(fact_dimensions.c.id))
            ]

    def get_kpi(self, connection_id: int, kpi_id: int) -> KPI | None:
        stmt = select(kpis).where(kpis.c.id == kpi_id, kpis.c.connection_id == connection_id)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        return KPI.model_validate(dict(row._mapping)) if row is not None else None

    def get_report(self, report_id: int) -> Report | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(reports).where(reports.c.id == report_id)).first()
            if row is None:
                return None
            cols = conn.execute(
                select(report_columns)
                .where(report_columns.c.report_id == report_id)
                .order_by(report_columns.c.order_index)
            ).all()
            filters = conn.execute(
                select(report_filters)
                .where(report_filters.c.report_id == report_id)
                .order_by(report_filters.c.order_index)
            ).all()
            drills = conn.execute(
                select(report_drillthrough).where(
                    report_drillthrough.c.parent_report_id == report_id
                )
            ).all()

        m = row._mapping
        return Report(
            id=m["id"],
            connection_id=m["connection_id"],
            owner_id=m["user_id"],
            name=m["name"],
            description=m["description"],
            base_table=m["base_table"],
            columns=[
                ReportColumn(
                    column_name=c.column_name,
                    alias=c.alias,
                    data_type=c.data_type,
                    visible=bool(c.visible),
                    order_index=c.order_index or 0,
                )
                for c in cols
            ],
            filters=[
                ReportFilter(
                    column_name=f.column_name,
                    operator=f.operator,
                    value=_decode_json(f.value),
                    is_user_editable=bool(f.is_user_editable),
                    order_index=f.order_index or 0,
                )
                for f in filters
            ],
            drill_targets=[
                DrillTarget(
                    target_report_id=d.target_report_id,
                    mapping=_decode_json(d.mapping_json) or {},
                    label=d.label,
                )
                for d in drills
            ],
        )

    def add_mappings(self, mappings: list[FactDimensionMapping]) -> list[FactDimensionMapping]:
        saved: list[FactDimensionMapping] = []
        with self._engine.begin() as conn:
            for mapping in mappings:
                result = conn.execute(
                    insert(fact_dimensions).values(
                        fact_id=mapping.fact_id,
                        dimension_id=mapping.dimension_id,
                        join_table=mapping.join_table,
                        fact_column=mapping.fact_column,
                        dimension_column=mapping.dimension_column,
                    )
                )
                new_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
                saved.append(mapping.model_copy(update={"id": new_id}))
        logger.info("Persisted %d fact-dimension mapping(s)", len(saved))
        return saved
