"""MySQL dialect implementation."""

from __future__ import annotations

from factlens.dialect.base import Dialect, DialectCapabilities, PoolOptions
from factlens.dialect.registry import DialectRegistry
from factlens.settings import Settings


@DialectRegistry.register
class MySQLDialect(Dialect):
    """MySQL dialect: backtick identifiers, ``USE`` for the default database.

    MySQL has no ordered-set aggregates, so MEDIAN is rejected before any
    round trip (inherited default).
    """

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            supports_median=False,
            supports_ilike=False,
            supports_schemas=False,
        )

    @property
    def driver_name(self) -> str:
        return "mysql+pymysql"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("`", "``")
        return f"`{escaped}`"

    def pool_options(self, settings: Settings) -> PoolOptions:
        return PoolOptions(
            pool_size=settings.mysql_pool_size,
            connect_timeout_ms=settings.mysql_connect_timeout_ms,
        )

    def connect_args(self, connect_timeout_ms: int) -> dict[str, object]:
        return {"connect_timeout": connect_timeout_ms / 1000}

    def default_schema_sql(self, schema: str) -> str:
        return f"USE {self.quote_identifier(schema)}"

    def columns_sql(self) -> str:
        return (
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_name = :table_name "
            "AND table_schema = COALESCE(:table_schema, DATABASE()) "
            "ORDER BY ordinal_position"
        )

    def tables_sql(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = COALESCE(:table_schema, DATABASE()) "
            "AND table_type = 'BASE TABLE' "
            "ORDER BY table_name"
        )
