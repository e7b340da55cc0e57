"""Orchestrates compilation: Request → Join resolution → Planning → AST → SQL."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from factlens.compiler.kpi import KpiExpander
from factlens.compiler.report import ReportPlanner
from factlens.compiler.resolution import ColumnCatalog, JoinResolver
from factlens.compiler.star import AggregatePlanner, QueryPlan
from factlens.compiler.validator import validate_sql
from factlens.dialect.base import Dialect
from factlens.dialect.registry import DialectRegistry
from factlens.models.errors import InvalidReferenceError
from factlens.models.query import FactQueryRequest, KpiQueryRequest
from factlens.models.report import Report
from factlens.models.semantic import Connection, Dimension
from factlens.settings import Settings
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger(__name__)


@dataclass
class ResolvedInfo:
    """Summary of what was resolved during compilation."""

    base_table: str = ""
    tables: list[str] = field(default_factory=list)
    dimensions: list[str] = field(default_factory=list)
    measures: list[str] = field(default_factory=list)


@dataclass
class CompilationResult:
    """The result of compiling a request to SQL."""

    sql: str
    dialect: str
    params: dict[str, Any] = field(default_factory=dict)
    resolved: ResolvedInfo = field(default_factory=ResolvedInfo)
    warnings: list[str] = field(default_factory=list)
    sql_valid: bool = True


class CompilationPipeline:
    """Compiles the three request shapes against a metadata repository.

    Every reference is checked against the repository before any catalog
    query is issued, so unknown ids fail without touching the target database.
    """

    def __init__(self, repository: MetadataRepository, settings: Settings | None = None) -> None:
        self._repo = repository
        self._settings = settings or Settings()
        self._resolver = JoinResolver()
        self._aggregate_planner = AggregatePlanner()
        self._report_planner = ReportPlanner()

    def compile_facts(
        self,
        connection: Connection,
        request: FactQueryRequest,
        catalog: ColumnCatalog | None = None,
    ) -> CompilationResult:
        dialect = DialectRegistry.get(connection.dialect)

        fact_ids = list(dict.fromkeys(request.fact_ids))
        facts = self._repo.get_facts(connection.id, fact_ids)
        found = {f.id for f in facts}
        for fid in fact_ids:
            if fid not in found:
                raise InvalidReferenceError(
                    "fact", fid, f"not defined on connection {connection.id}"
                )

        dimensions = self._load_dimensions(connection, request.dimension_ids, request.filters)
        mappings = self._repo.list_mappings(fact_ids, [d.id for d in dimensions])
        join_plan = self._resolver.resolve(facts, dimensions, mappings, catalog)

        plan = self._aggregate_planner.plan_facts(
            facts,
            join_plan,
            selected=request.dimension_ids,
            filters=request.filters,
            aggregation=request.aggregation,
        )
        return self._render(plan, dialect)

    def compile_kpi(
        self,
        connection: Connection,
        request: KpiQueryRequest,
        catalog: ColumnCatalog | None = None,
    ) -> CompilationResult:
        dialect = DialectRegistry.get(connection.dialect)

        kpi = self._repo.get_kpi(connection.id, request.kpi_id)
        if kpi is None:
            raise InvalidReferenceError(
                "KPI", request.kpi_id, f"not defined on connection {connection.id}"
            )

        expander = KpiExpander(dialect, sum_only=self._settings.kpi_sum_only)
        expansion = expander.expand(kpi.expression, self._repo.list_facts(connection.id))
        logger.debug("Expanded KPI '%s' to %s", kpi.name, expansion.sql)

        dimensions = self._load_dimensions(connection, request.dimension_ids, request.filters)
        fact_ids = [f.id for f in expansion.facts]
        mappings = self._repo.list_mappings(fact_ids, [d.id for d in dimensions])
        join_plan = self._resolver.resolve(expansion.facts, dimensions, mappings, catalog)

        plan = self._aggregate_planner.plan_kpi(
            kpi.name,
            expansion,
            join_plan,
            selected=request.dimension_ids,
            filters=request.filters,
        )
        return self._render(plan, dialect)

    def compile_report(
        self,
        report: Report,
        dialect_name: str,
        runtime_filters: Mapping[str, Any] | None = None,
    ) -> CompilationResult:
        dialect = DialectRegistry.get(dialect_name)
        plan = self._report_planner.plan(report, runtime_filters)
        return self._render(plan, dialect)

    def _load_dimensions(
        self, connection: Connection, selected: list[int], filters: list[Any]
    ) -> list[Dimension]:
        ids = list(dict.fromkeys([*selected, *(f.dimension_id for f in filters)]))
        dimensions = self._repo.get_dimensions(connection.id, ids)
        found = {d.id for d in dimensions}
        for did in ids:
            if did not in found:
                raise InvalidReferenceError(
                    "dimension", did, f"not defined on connection {connection.id}"
                )
        return dimensions

    def _render(self, plan: QueryPlan, dialect: Dialect) -> CompilationResult:
        sql = dialect.compile(plan.ast)

        warnings = list(plan.warnings)
        sql_valid = True
        if self._settings.validate_sql:
            validation_errors = validate_sql(sql, dialect.name)
            sql_valid = len(validation_errors) == 0
            if not sql_valid:
                warnings = warnings + [f"SQL validation: {e}" for e in validation_errors]

        return CompilationResult(
            sql=sql,
            dialect=dialect.name,
            params=plan.params,
            resolved=ResolvedInfo(
                base_table=plan.base_table,
                tables=plan.tables,
                dimensions=plan.dimensions,
                measures=plan.measures,
            ),
            warnings=warnings,
            sql_valid=sql_valid,
        )
