"""FastMCP server exposing FactLens semantic queries as MCP tools.

Run via::

    factlens-mcp                        # reads .env (default: stdio)
    MCP_TRANSPORT=http factlens-mcp     # streamable HTTP on port 9000

The metadata store and connection pools are process-wide; pools are drained
when the server stops. Settings are loaded from environment variables and
``.env`` file; see ``.env.example`` for available options.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import ValidationError

from factlens import __version__
from factlens.dialect import DialectRegistry
from factlens.models.errors import FactlensError
from factlens.models.query import FactQueryRequest, KpiQueryRequest, QueryFilter
from factlens.service.pool_registry import PoolRegistry
from factlens.service.semantic_service import QueryResult, SemanticService
from factlens.settings import Settings
from factlens.storage.factory import build_repository

# ---------------------------------------------------------------------------
# Server + shared state
# ---------------------------------------------------------------------------

logger = logging.getLogger("factlens.mcp")

mcp = FastMCP("FactLens Semantic Layer")
_service: SemanticService | None = None

_MAX_ROWS_SHOWN = 200


def init_service(service: SemanticService | None) -> None:
    """Install (or clear, with ``None``) the service the tools call into."""
    global _service  # noqa: PLW0603
    _service = service


def _require_service() -> SemanticService:
    if _service is None:
        raise ToolError("Semantic service not initialised")
    return _service


def _format_result(result: QueryResult) -> str:
    """SQL header, then rows as JSON lines."""
    parts = [f"-- Dialect: {result.dialect}"]
    if result.resolved.tables:
        parts.append(f"-- Tables: {', '.join(result.resolved.tables)}")
    if result.params:
        parts.append(f"-- Params: {json.dumps(result.params, default=str)}")
    parts += ["", result.sql, "", f"-- {len(result.rows)} row(s)"]
    for row in result.rows[:_MAX_ROWS_SHOWN]:
        parts.append(json.dumps(row, default=str))
    if len(result.rows) > _MAX_ROWS_SHOWN:
        parts.append(f"-- ... {len(result.rows) - _MAX_ROWS_SHOWN} more row(s) not shown")
    if result.warnings:
        parts.append("")
        parts.append(f"-- Warnings: {'; '.join(result.warnings)}")
    return "\n".join(parts)


def _tool_error(exc: FactlensError) -> ToolError:
    suffix = " (retryable)" if exc.retryable else ""
    message = f"[{exc.code}] {exc.message}{suffix}"
    sql = getattr(exc, "sql", None)
    if sql:
        message += f"\n\n{sql}"
    return ToolError(message)


def _parse_filters(filters_json: str | None) -> list[QueryFilter]:
    if not filters_json:
        return []
    try:
        raw: Any = json.loads(filters_json)
        if isinstance(raw, dict):
            raw = [{"dimensionId": int(k), "value": v} for k, v in raw.items()]
        return [QueryFilter.model_validate(item) for item in raw]
    except (json.JSONDecodeError, ValidationError, TypeError, ValueError) as exc:
        raise ToolError(f"Invalid filters JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
def run_fact_query(
    connection_id: int,
    fact_ids: list[int],
    dimension_ids: list[int] | None = None,
    aggregation: str | None = None,
    filters_json: str | None = None,
) -> str:
    """Aggregate facts grouped by dimensions and return the SQL plus rows.

    Args:
        connection_id: Connection the facts and dimensions belong to.
        fact_ids: Facts to aggregate; the first fact's table is the base table.
        dimension_ids: Dimensions to group by (optional).
        aggregation: Override every fact's aggregate (SUM, AVG, COUNT, MIN,
            MAX, MEDIAN, STDDEV, VARIANCE).
        filters_json: Equality filters, either ``{"<dimensionId>": value}`` or
            ``[{"dimensionId": 1, "value": [..]}]``. Lists filter with IN.
    """
    logger.info("run_fact_query called (connection=%d, facts=%s)", connection_id, fact_ids)
    service = _require_service()
    try:
        request = FactQueryRequest(
            fact_ids=fact_ids,
            dimension_ids=dimension_ids or [],
            aggregation=aggregation,
            filters=_parse_filters(filters_json),
        )
    except ValidationError as exc:
        raise ToolError(f"Invalid request: {exc}") from exc
    try:
        return _format_result(service.run_fact_query(connection_id, request))
    except FactlensError as exc:
        raise _tool_error(exc) from exc


@mcp.tool
def run_kpi_query(
    connection_id: int,
    kpi_id: int,
    dimension_ids: list[int] | None = None,
    filters_json: str | None = None,
) -> str:
    """Evaluate a KPI expression grouped by dimensions.

    Args:
        connection_id: Connection the KPI belongs to.
        kpi_id: KPI to evaluate.
        dimension_ids: Dimensions to group by (optional).
        filters_json: Same format as for ``run_fact_query``.
    """
    logger.info("run_kpi_query called (connection=%d, kpi=%d)", connection_id, kpi_id)
    service = _require_service()
    request = KpiQueryRequest(
        kpi_id=kpi_id, dimension_ids=dimension_ids or [], filters=_parse_filters(filters_json)
    )
    try:
        return _format_result(service.run_kpi_query(connection_id, request))
    except FactlensError as exc:
        raise _tool_error(exc) from exc


@mcp.tool
def run_report(report_id: int, runtime_filters: dict[str, Any] | None = None) -> str:
    """Run a saved report.

    Args:
        report_id: Report to run.
        runtime_filters: Column name to value; overrides stored filters on
            the same column. List values filter with IN.
    """
    service = _require_service()
    try:
        return _format_result(service.run_report(report_id, runtime_filters or {}))
    except FactlensError as exc:
        raise _tool_error(exc) from exc


@mcp.tool
def auto_map(connection_id: int) -> str:
    """Infer fact-dimension mappings from shared column names and save them."""
    service = _require_service()
    try:
        result = service.auto_map(connection_id)
    except FactlensError as exc:
        raise _tool_error(exc) from exc

    lines = [f"Created {len(result.created)} mapping(s), skipped {result.skipped} pair(s)."]
    for m in result.created:
        lines.append(
            f"  fact {m.fact_id} -> dimension {m.dimension_id} "
            f"on {m.join_table}.{m.dimension_column}"
        )
    if result.failures:
        lines.append("Failures:")
        lines.extend(f"  {f}" for f in result.failures)
    return "\n".join(lines)


@mcp.tool
def list_dialects() -> str:
    """List available SQL dialects and their capabilities."""
    lines = ["Available dialects:", ""]
    for name in DialectRegistry.available():
        caps = asdict(DialectRegistry.get(name).capabilities)
        enabled = [k for k, v in caps.items() if v]
        cap_str = ", ".join(enabled) if enabled else "(none)"
        lines.append(f"  {name}: {cap_str}")
    return "\n".join(lines)


def main() -> None:
    """Run the MCP server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "FactLens MCP Server v%s starting (transport=%s)",
        __version__,
        settings.mcp_transport,
    )

    repository = build_repository(settings)
    registry = PoolRegistry(repository, settings)
    init_service(SemanticService(repository, registry, settings))

    try:
        if settings.mcp_transport == "stdio":
            mcp.run(transport="stdio")
        else:
            mcp.run(
                transport=settings.mcp_transport,
                host=settings.mcp_server_host,
                port=settings.mcp_server_port,
                log_level=settings.log_level.lower(),
            )
    finally:
        registry.dispose()
        init_service(None)


if __name__ == "__main__":
    main()
