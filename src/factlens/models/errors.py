"""Error taxonomy shared by the compiler, the services, and the API surfaces."""

from __future__ import annotations

from pydantic import BaseModel


class FactlensError(Exception):
    """Base for every error surfaced to callers.

    ``code`` is stable and machine-readable; ``status`` is the HTTP status the
    REST surface maps it to; ``retryable`` tells callers a backoff retry may
    succeed.
    """

    code: str = "FACTLENS_ERROR"
    status: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidReferenceError(FactlensError):
    """Unknown or foreign fact, dimension, KPI, report, or column reference."""

    code = "INVALID_REFERENCE"
    status = 404

    def __init__(self, kind: str, ref: object, detail: str | None = None) -> None:
        self.kind = kind
        self.ref = ref
        message = f"Unknown {kind} '{ref}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ErrorDetail(BaseModel):
    """Structured error payload returned to API and MCP clients."""

    error: str
    message: str
    retryable: bool = False
    sql: str | None = None


def to_detail(exc: FactlensError) -> ErrorDetail:
    """Render an error without exposing driver internals."""
    return ErrorDetail(
        error=exc.code,
        message=exc.message,
        retryable=exc.retryable,
        sql=getattr(exc, "sql", None),
    )
