"""Immutable SQL AST nodes. All SQL is generated from these, never string concatenation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class JoinType(StrEnum):
    LEFT = "LEFT"
    INNER = "INNER"


@dataclass(frozen=True)
class Literal:
    """An inline literal: number, boolean, or NULL.

    User-supplied values go through :class:`BindParam` instead.
    """

    value: int | float | bool | None


@dataclass(frozen=True)
class BindParam:
    """A named bind parameter, rendered as ``:name`` and bound at execution."""

    name: str
    value: Any = field(compare=False)


@dataclass(frozen=True)
class Star:
    """SELECT * or table.*"""

    table: str | None = None


@dataclass(frozen=True)
class ColumnRef:
    """Reference to a column, optionally qualified by table."""

    name: str
    table: str | None = None


@dataclass(frozen=True)
class AliasedExpr:
    """An expression with an alias: expr AS alias."""

    expr: Expr
    alias: str


@dataclass(frozen=True)
class FunctionCall:
    """SQL function call, e.g. SUM(col). Aggregate names are rendered per dialect."""

    name: str
    args: list[Expr] = field(default_factory=list)
    distinct: bool = False


@dataclass(frozen=True)
class BinaryOp:
    """Binary operation: left op right."""

    left: Expr
    op: str  # =, <>, <, AND, LIKE, ...
    right: Expr


@dataclass(frozen=True)
class InList:
    """expr IN (v1, v2, ...) or NOT IN."""

    expr: Expr
    values: list[Expr] = field(default_factory=list)
    negated: bool = False


@dataclass(frozen=True)
class RawSQL:
    """Escape hatch for pre-rendered SQL fragments (expanded KPI expressions).

    Use sparingly; prefer AST nodes for correctness.
    """

    sql: str


# The union of all expression types.
Expr = (
    Literal | BindParam | Star | ColumnRef | AliasedExpr | FunctionCall | BinaryOp | InList | RawSQL
)


@dataclass(frozen=True)
class From:
    """FROM clause: a table name."""

    source: str
    alias: str | None = None


@dataclass(frozen=True)
class Join:
    """JOIN clause."""

    join_type: JoinType
    source: str
    alias: str | None = None
    on: Expr | None = None


@dataclass(frozen=True)
class Select:
    """A complete SELECT statement."""

    columns: list[Expr] = field(default_factory=list)
    from_: From | None = None
    joins: list[Join] = field(default_factory=list)
    where: Expr | None = None
    group_by: list[Expr] = field(default_factory=list)
    limit: int | None = None
