"""Facade tying the compiler, the pool registry, and the executor together.

Both the REST API and the MCP server call into :class:`SemanticService`;
neither talks to the compiler or the pools directly.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from factlens.compiler.pipeline import CompilationPipeline, CompilationResult, ResolvedInfo
from factlens.models.errors import InvalidReferenceError
from factlens.models.query import FactQueryRequest, KpiQueryRequest
from factlens.models.report import DrillTarget, Report
from factlens.service.automap import AutoMapper, AutoMapResult
from factlens.service.executor import QueryExecutor, Row
from factlens.service.introspection import SchemaIntrospector
from factlens.service.pool_registry import PoolRegistry
from factlens.settings import Settings
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Generated SQL and the rows it returned. The SQL is always included."""

    sql: str
    dialect: str
    rows: list[Row] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    resolved: ResolvedInfo = field(default_factory=ResolvedInfo)
    warnings: list[str] = field(default_factory=list)
    sql_valid: bool = True


class SemanticService:
    def __init__(
        self,
        repository: MetadataRepository,
        registry: PoolRegistry,
        settings: Settings | None = None,
        executor: QueryExecutor | None = None,
    ) -> None:
        self._repo = repository
        self._registry = registry
        self._settings = settings or Settings()
        self._pipeline = CompilationPipeline(repository, self._settings)
        self._executor = executor or QueryExecutor()
        self._automapper = AutoMapper(repository)

    @property
    def repository(self) -> MetadataRepository:
        return self._repo

    def _introspector(self, connection_id: int, user_id: int | None) -> SchemaIntrospector:
        return SchemaIntrospector(
            lambda: self._registry.acquire(connection_id, user_id),
            max_workers=self._settings.introspection_workers,
        )

    def _execute(
        self, connection_id: int, user_id: int | None, compiled: CompilationResult
    ) -> QueryResult:
        pooled = self._registry.acquire(connection_id, user_id)
        rows = self._executor.execute(pooled, compiled.sql, compiled.params)
        for warning in compiled.warnings:
            logger.info("Query warning on connection %d: %s", connection_id, warning)
        return QueryResult(
            sql=compiled.sql,
            dialect=compiled.dialect,
            rows=rows,
            params=compiled.params,
            resolved=compiled.resolved,
            warnings=compiled.warnings,
            sql_valid=compiled.sql_valid,
        )

    # -- query shapes --------------------------------------------------------

    def run_fact_query(
        self, connection_id: int, request: FactQueryRequest, user_id: int | None = None
    ) -> QueryResult:
        connection = self._registry.connection_for(connection_id, user_id)
        compiled = self._pipeline.compile_facts(
            connection, request, self._introspector(connection_id, user_id)
        )
        return self._execute(connection_id, user_id, compiled)

    def run_kpi_query(
        self, connection_id: int, request: KpiQueryRequest, user_id: int | None = None
    ) -> QueryResult:
        connection = self._registry.connection_for(connection_id, user_id)
        compiled = self._pipeline.compile_kpi(
            connection, request, self._introspector(connection_id, user_id)
        )
        return self._execute(connection_id, user_id, compiled)

    def run_report(
        self,
        report_id: int,
        runtime_filters: Mapping[str, Any] | None = None,
        user_id: int | None = None,
    ) -> QueryResult:
        report = self._get_report(report_id)
        connection = self._registry.connection_for(report.connection_id, user_id)
        compiled = self._pipeline.compile_report(report, connection.dialect, runtime_filters)
        return self._execute(report.connection_id, user_id, compiled)

    # -- reports -------------------------------------------------------------

    def _get_report(self, report_id: int) -> Report:
        report = self._repo.get_report(report_id)
        if report is None:
            raise InvalidReferenceError("report", report_id)
        return report

    def get_drill_config(self, report_id: int, user_id: int | None = None) -> list[DrillTarget]:
        report = self._get_report(report_id)
        self._registry.connection_for(report.connection_id, user_id)
        return list(report.drill_targets)

    def drill_through(
        self,
        report_id: int,
        target_report_id: int,
        row: Mapping[str, Any],
        user_id: int | None = None,
    ) -> QueryResult:
        """Run ``target_report_id`` filtered by the clicked ``row`` of ``report_id``.

        Each ``source column -> target filter`` pair of the drill mapping
        becomes a runtime filter; row columns the mapping does not name are
        ignored.
        """
        report = self._get_report(report_id)
        link = next(
            (d for d in report.drill_targets if d.target_report_id == target_report_id), None
        )
        if link is None:
            raise InvalidReferenceError(
                "drill target", target_report_id, f"not linked from report '{report.name}'"
            )
        filters = {target: row[source] for source, target in link.mapping.items() if source in row}
        return self.run_report(target_report_id, filters, user_id)

    # -- connections ---------------------------------------------------------

    def auto_map(self, connection_id: int, user_id: int | None = None) -> AutoMapResult:
        self._registry.connection_for(connection_id, user_id)
        return self._automapper.run(connection_id, self._introspector(connection_id, user_id))

    def list_tables(self, connection_id: int, user_id: int | None = None) -> list[str]:
        self._registry.connection_for(connection_id, user_id)
        return self._introspector(connection_id, user_id).list_tables()

    def describe_table(
        self, connection_id: int, table: str, user_id: int | None = None
    ) -> list[str]:
        self._registry.connection_for(connection_id, user_id)
        columns = self._introspector(connection_id, user_id).columns(table)
        if not columns:
            raise InvalidReferenceError("table", table, f"not found on connection {connection_id}")
        return columns
