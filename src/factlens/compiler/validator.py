"""Post-generation SQL checks using sqlglot."""

from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError
from sqlglot.tokens import TokenType

from factlens.models.errors import FactlensError

_DIALECT_MAP: dict[str, str] = {
    "postgres": "postgres",
    "mysql": "mysql",
}


class UnsafeSQLError(FactlensError):
    """Generated SQL is not a single read-only SELECT."""

    code = "UNSAFE_SQL"
    status = 400

    def __init__(self, reason: str, sql: str) -> None:
        self.sql = sql
        super().__init__(f"Refusing to execute SQL: {reason}")


def validate_sql(sql: str, dialect_name: str) -> list[str]:
    """Parse SQL with sqlglot for the given dialect.

    Returns a list of error messages (empty if valid).
    Validation is non-blocking; callers should treat errors as warnings.
    """
    sg_dialect = _DIALECT_MAP.get(dialect_name)
    if sg_dialect is None:
        return [f"Unknown dialect '{dialect_name}', skipping SQL validation"]

    errors: list[str] = []
    try:
        sqlglot.transpile(sql, read=sg_dialect)
    except SqlglotError as exc:
        errors.append(str(exc))
    return errors


def ensure_select(sql: str, dialect_name: str) -> None:
    """Raise :class:`UnsafeSQLError` unless ``sql`` parses to exactly one SELECT.

    SQL that sqlglot cannot parse is let through only when its tokens hold no
    statement separator; the database then reports the syntax error.
    """
    read = _DIALECT_MAP.get(dialect_name)
    try:
        statements = [s for s in sqlglot.parse(sql, read=read) if s]
    except SqlglotError:
        _ensure_single_unparsed(sql, read)
        return
    if len(statements) != 1:
        raise UnsafeSQLError(f"expected one statement, found {len(statements)}", sql)
    statement = statements[0]
    if not isinstance(statement, exp.Query):
        raise UnsafeSQLError(f"{statement.key.upper()} statements are not allowed", sql)
    write = statement.find(exp.Insert, exp.Update, exp.Delete, exp.Drop, exp.Create)
    if write is not None:
        raise UnsafeSQLError(f"{write.key.upper()} inside a query is not allowed", sql)


def _ensure_single_unparsed(sql: str, read: str | None) -> None:
    try:
        tokens = sqlglot.tokenize(sql, read=read)
    except SqlglotError as exc:
        raise UnsafeSQLError("SQL could not be tokenized", sql) from exc
    # Semicolons inside string literals are STRING tokens, not separators
    if any(t.token_type == TokenType.SEMICOLON for t in tokens[:-1]):
        raise UnsafeSQLError("unparseable SQL with more than one statement", sql)
