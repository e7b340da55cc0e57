"""Catalog lookups against a target database."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

import sqlalchemy.exc
from sqlalchemy import text

from factlens.models.errors import FactlensError
from factlens.service.pool_registry import PooledConnection

logger = logging.getLogger(__name__)


class IntrospectionError(FactlensError):
    code = "INTROSPECTION_FAILED"
    status = 502

    def __init__(self, table: str | None, reason: str) -> None:
        self.table = table
        target = f"table '{table}'" if table else "the table catalog"
        super().__init__(f"Could not read columns of {target}: {reason}")


class SchemaIntrospector:
    """Reads column names from ``information_schema``, once per table.

    Meant to live for one request. The pool is obtained lazily through
    ``pool_provider`` so requests that never need the catalog never touch
    the target database here. Lookups for several tables run concurrently.
    """

    def __init__(
        self,
        pool_provider: Callable[[], PooledConnection],
        max_workers: int = 4,
    ) -> None:
        self._pool_provider = pool_provider
        self._pooled: PooledConnection | None = None
        self._max_workers = max(1, max_workers)
        self._lock = threading.Lock()
        self._columns: dict[str, list[str]] = {}

    @property
    def pooled(self) -> PooledConnection:
        with self._lock:
            if self._pooled is None:
                self._pooled = self._pool_provider()
            return self._pooled

    def columns(self, table: str) -> list[str]:
        """Column names of ``table`` in catalog order (empty if the table is unknown)."""
        with self._lock:
            cached = self._columns.get(table)
        if cached is not None:
            return cached

        pooled = self.pooled
        try:
            with pooled.lease() as conn:
                result = conn.execute(
                    text(pooled.dialect.columns_sql()),
                    {"table_name": table, "table_schema": pooled.schema},
                )
                names = [row[0] for row in result]
        except sqlalchemy.exc.SQLAlchemyError as exc:
            logger.warning("Column lookup failed for table '%s': %s", table, exc)
            raise IntrospectionError(table, "catalog query failed") from exc

        logger.debug("Introspected %d column(s) of '%s'", len(names), table)
        with self._lock:
            self._columns.setdefault(table, names)
            return self._columns[table]

    def columns_for(self, tables: Iterable[str]) -> dict[str, list[str]]:
        """Column lists for several tables, fetched concurrently."""
        pending = list(dict.fromkeys(tables))
        if not pending:
            return {}
        if len(pending) == 1:
            return {pending[0]: self.columns(pending[0])}
        # Resolve the pool once before fanning out
        self.pooled  # noqa: B018
        workers = min(self._max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="introspect") as pool:
            results = list(pool.map(self.columns, pending))
        return dict(zip(pending, results, strict=True))

    def list_tables(self) -> list[str]:
        """Base tables of the connection's default schema."""
        pooled = self.pooled
        try:
            with pooled.lease() as conn:
                result = conn.execute(
                    text(pooled.dialect.tables_sql()), {"table_schema": pooled.schema}
                )
                return [row[0] for row in result]
        except sqlalchemy.exc.SQLAlchemyError as exc:
            logger.warning("Table listing failed: %s", exc)
            raise IntrospectionError(None, "catalog query failed") from exc
