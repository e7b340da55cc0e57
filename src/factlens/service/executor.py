"""Run compiled SQL on a pooled connection."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

import sqlalchemy.exc
from sqlalchemy import text

from factlens.compiler.validator import ensure_select
from factlens.models.errors import FactlensError
from factlens.service.pool_registry import PooledConnection

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class ExecutionError(FactlensError):
    """The database rejected or failed the generated statement."""

    code = "EXECUTION_FAILED"
    status = 502

    def __init__(self, sql: str, reason: str) -> None:
        self.sql = sql
        super().__init__(f"Query execution failed: {reason}")


def _reason(exc: sqlalchemy.exc.SQLAlchemyError) -> str:
    """One line from the driver error, without the SQL or traceback."""
    orig = getattr(exc, "orig", None)
    message = str(orig) if orig is not None else exc.__class__.__name__
    return message.strip().splitlines()[0] if message.strip() else exc.__class__.__name__


class QueryExecutor:
    """Executes read-only statements and normalizes rows to string-keyed dicts."""

    def __init__(self, *, guard: bool = True) -> None:
        self._guard = guard

    def execute(
        self,
        pooled: PooledConnection,
        sql: str,
        params: Mapping[str, Any] | None = None,
    ) -> list[Row]:
        if self._guard:
            ensure_select(sql, pooled.dialect.name)

        start = time.perf_counter()
        with pooled.lease() as conn:
            try:
                result = conn.execute(text(sql), dict(params or {}))
                rows = [{str(k): v for k, v in r._mapping.items()} for r in result]
            except sqlalchemy.exc.SQLAlchemyError as exc:
                logger.warning(
                    "Execution failed on connection %d: %s\n%s", pooled.connection.id, exc, sql
                )
                raise ExecutionError(sql, _reason(exc)) from exc

        logger.info(
            "Executed query on connection %d: %d row(s) in %.1fms",
            pooled.connection.id,
            len(rows),
            (time.perf_counter() - start) * 1000,
        )
        return rows
