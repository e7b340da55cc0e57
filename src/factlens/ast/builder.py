"""Fluent builder API for constructing SQL AST nodes."""

from __future__ import annotations

from typing import Any, Self

from factlens.ast.nodes import (
    AliasedExpr,
    BinaryOp,
    BindParam,
    ColumnRef,
    Expr,
    From,
    FunctionCall,
    InList,
    Join,
    JoinType,
    Literal,
    Select,
)


class QueryBuilder:
    """Fluent builder for ergonomic AST construction.

    Also owns the bind parameters of the statement: :meth:`bind` hands out
    sequentially named :class:`BindParam` nodes and :attr:`params` collects
    their values for execution.
    """

    def __init__(self) -> None:
        self._columns: list[Expr] = []
        self._from: From | None = None
        self._joins: list[Join] = []
        self._where: Expr | None = None
        self._group_by: list[Expr] = []
        self._limit: int | None = None
        self._params: dict[str, Any] = {}

    @property
    def params(self) -> dict[str, Any]:
        return dict(self._params)

    def bind(self, value: Any) -> BindParam:
        name = f"p{len(self._params)}"
        self._params[name] = value
        return BindParam(name=name, value=value)

    def select(self, *columns: Expr) -> Self:
        self._columns.extend(columns)
        return self

    def select_aliased(self, expr: Expr, alias: str) -> Self:
        self._columns.append(AliasedExpr(expr=expr, alias=alias))
        return self

    def from_(self, table: str, alias: str | None = None) -> Self:
        self._from = From(source=table, alias=alias)
        return self

    def join(
        self,
        table: str,
        on: Expr,
        join_type: JoinType = JoinType.LEFT,
        alias: str | None = None,
    ) -> Self:
        self._joins.append(Join(join_type=join_type, source=table, alias=alias, on=on))
        return self

    def where(self, condition: Expr) -> Self:
        if self._where is None:
            self._where = condition
        else:
            self._where = BinaryOp(left=self._where, op="AND", right=condition)
        return self

    def group_by(self, *exprs: Expr) -> Self:
        for expr in exprs:
            if expr not in self._group_by:
                self._group_by.append(expr)
        return self

    def limit(self, n: int) -> Self:
        self._limit = n
        return self

    def build(self) -> Select:
        return Select(
            columns=self._columns,
            from_=self._from,
            joins=self._joins,
            where=self._where,
            group_by=self._group_by,
            limit=self._limit,
        )


# Convenience constructors for common expressions.


def col(name: str, table: str | None = None) -> ColumnRef:
    """Create a column reference."""
    return ColumnRef(name=name, table=table)


def func(name: str, *args: Expr, distinct: bool = False) -> FunctionCall:
    """Create a function call."""
    return FunctionCall(name=name, args=list(args), distinct=distinct)


def lit(value: int | float | bool | None) -> Literal:
    """Create an inline literal value."""
    return Literal(value=value)


def alias(expr: Expr, name: str) -> AliasedExpr:
    """Create an aliased expression."""
    return AliasedExpr(expr=expr, alias=name)


def eq(left: Expr, right: Expr) -> BinaryOp:
    """Create an equality comparison."""
    return BinaryOp(left=left, op="=", right=right)


def in_(expr: Expr, values: list[Expr], negated: bool = False) -> InList:
    """Create an IN / NOT IN predicate."""
    return InList(expr=expr, values=values, negated=negated)
