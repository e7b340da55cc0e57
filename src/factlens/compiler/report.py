"""Report planner: projection of one base table with stored and runtime filters."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from factlens.ast.builder import QueryBuilder, col, in_
from factlens.ast.nodes import AliasedExpr, BinaryOp, Expr, Star
from factlens.compiler.star import QueryPlan
from factlens.models.errors import InvalidReferenceError
from factlens.models.report import Report

# Stored filter operators that may be rendered; anything else is rejected.
_COMPARISONS = frozenset({"=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE"})
_LIST_OPERATORS = frozenset({"IN", "NOT IN"})


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list | tuple) and not value)


class ReportPlanner:
    """Plans ``SELECT <visible columns> FROM <base table> WHERE <filters>``.

    Runtime filters are equality (``IN`` for lists). A non-empty runtime value
    replaces a user-editable stored filter on the same column; stored filters
    that are not editable always apply. Filters with an empty value are skipped.
    """

    def plan(self, report: Report, runtime_filters: Mapping[str, Any] | None = None) -> QueryPlan:
        runtime = dict(runtime_filters or {})
        known = report.known_columns
        for name in runtime:
            if name not in known:
                raise InvalidReferenceError(
                    "report column", name, f"not a column of report '{report.name}'"
                )

        builder = QueryBuilder()
        visible = report.visible_columns
        if visible:
            for rc in visible:
                ref = col(rc.column_name)
                builder.select(AliasedExpr(expr=ref, alias=rc.alias) if rc.alias else ref)
        else:
            builder.select(Star())
        builder.from_(report.base_table)

        overrides = {name: value for name, value in runtime.items() if not _is_empty(value)}
        for flt in sorted(report.filters, key=lambda f: f.order_index):
            if _is_empty(flt.value):
                continue
            if flt.is_user_editable and flt.column_name in overrides:
                continue
            builder.where(self._stored_expr(builder, flt.column_name, flt.operator, flt.value))

        for name, value in overrides.items():
            ref = col(name)
            if isinstance(value, list | tuple):
                builder.where(in_(ref, [builder.bind(v) for v in value]))
            else:
                builder.where(BinaryOp(left=ref, op="=", right=builder.bind(value)))

        return QueryPlan(
            ast=builder.build(),
            params=builder.params,
            base_table=report.base_table,
            tables=[report.base_table],
            dimensions=[rc.alias or rc.column_name for rc in visible],
        )

    @staticmethod
    def _stored_expr(builder: QueryBuilder, column: str, operator: str, value: Any) -> Expr:
        op = " ".join(operator.upper().split())
        ref = col(column)
        if isinstance(value, list | tuple) or op in _LIST_OPERATORS:
            values = list(value) if isinstance(value, list | tuple) else [value]
            if op not in _LIST_OPERATORS and op not in ("=", "!=", "<>"):
                raise InvalidReferenceError(
                    "filter operator", operator, f"cannot be applied to a list on '{column}'"
                )
            negated = op in ("NOT IN", "!=", "<>")
            return in_(ref, [builder.bind(v) for v in values], negated=negated)
        if op not in _COMPARISONS:
            raise InvalidReferenceError("filter operator", operator)
        return BinaryOp(left=ref, op=op, right=builder.bind(value))
