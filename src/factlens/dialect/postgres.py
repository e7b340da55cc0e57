"""PostgreSQL dialect implementation."""

from __future__ import annotations

import math

from factlens.ast.nodes import Expr
from factlens.dialect.base import Dialect, DialectCapabilities, PoolOptions
from factlens.dialect.registry import DialectRegistry
from factlens.settings import Settings


@DialectRegistry.register
class PostgresDialect(Dialect):
    """PostgreSQL dialect: double-quoted identifiers, ordered-set MEDIAN, search_path."""

    @property
    def name(self) -> str:
        return "postgres"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            supports_median=True,
            supports_ilike=True,
            supports_schemas=True,
        )

    @property
    def driver_name(self) -> str:
        return "postgresql+psycopg"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def pool_options(self, settings: Settings) -> PoolOptions:
        return PoolOptions(
            pool_size=settings.postgres_pool_size,
            connect_timeout_ms=settings.postgres_connect_timeout_ms,
        )

    def connect_args(self, connect_timeout_ms: int) -> dict[str, object]:
        # libpq takes whole seconds
        return {"connect_timeout": max(1, math.ceil(connect_timeout_ms / 1000))}

    def default_schema_sql(self, schema: str) -> str:
        return f"SET search_path TO {self.quote_identifier(schema)}"

    def columns_sql(self) -> str:
        return (
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_name = :table_name "
            "AND table_schema = COALESCE(CAST(:table_schema AS TEXT), current_schema()) "
            "ORDER BY ordinal_position"
        )

    def tables_sql(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = COALESCE(CAST(:table_schema AS TEXT), current_schema()) "
            "AND table_type = 'BASE TABLE' "
            "ORDER BY table_name"
        )

    def _compile_median(self, args: list[Expr]) -> str:
        """PostgreSQL: PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY col)."""
        return f"PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY {self._first_arg(args)})"
