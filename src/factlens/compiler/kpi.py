"""Expand KPI expressions by substituting fact names with aggregate SQL."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from factlens.ast.nodes import ColumnRef, FunctionCall
from factlens.dialect.base import Dialect
from factlens.models.errors import InvalidReferenceError
from factlens.models.semantic import AggregationFunction, Fact


@dataclass
class KpiExpansion:
    """Rendered SQL plus the facts it references, in order of first appearance."""

    sql: str
    facts: list[Fact] = field(default_factory=list)


class KpiExpander:
    """Rewrites ``Revenue - Cost`` into ``SUM("orders"."amount") - SUM("orders"."cost")``.

    Fact names match whole-word and case-insensitively. All names are
    substituted in one pass, longest first, so a fact whose name contains
    another fact's name is never partially rewritten and substituted SQL is
    never rescanned. Anything that is not a fact name passes through as-is.
    """

    def __init__(self, dialect: Dialect, *, sum_only: bool = False) -> None:
        self._dialect = dialect
        self._sum_only = sum_only

    def fragment(self, fact: Fact) -> str:
        """The aggregate SQL for one fact reference."""
        agg = AggregationFunction.SUM if self._sum_only else fact.aggregate_function
        call = FunctionCall(name=agg.value, args=[ColumnRef(name=fact.column, table=fact.table)])
        return self._dialect.compile_expr(call)

    def expand(self, expression: str, facts: list[Fact]) -> KpiExpansion:
        by_name: dict[str, Fact] = {}
        for fact in facts:
            by_name.setdefault(fact.name.lower(), fact)
        if not by_name:
            raise InvalidReferenceError("KPI expression", expression, "no facts defined")

        names = sorted(by_name, key=len, reverse=True)
        pattern = re.compile(
            r"(?<!\w)(" + "|".join(re.escape(n) for n in names) + r")(?!\w)",
            re.IGNORECASE,
        )

        referenced: dict[int, Fact] = {}

        def _substitute(match: re.Match[str]) -> str:
            fact = by_name[match.group(1).lower()]
            referenced.setdefault(fact.id, fact)
            return self.fragment(fact)

        sql = pattern.sub(_substitute, expression)
        if not referenced:
            raise InvalidReferenceError(
                "KPI expression", expression, "does not reference any known fact"
            )
        return KpiExpansion(sql=sql, facts=list(referenced.values()))
