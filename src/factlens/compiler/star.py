"""Aggregate planner: base fact table plus inner-joined dimension tables → AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from factlens.ast.builder import QueryBuilder, col, eq, func, in_
from factlens.ast.nodes import AliasedExpr, ColumnRef, Expr, JoinType, RawSQL, Select
from factlens.compiler.graph import JoinTree
from factlens.compiler.kpi import KpiExpansion
from factlens.compiler.resolution import JoinPlan, NoResolvableDimensionsError, ResolvedDimension
from factlens.models.query import QueryFilter
from factlens.models.semantic import AggregationFunction, Fact


@dataclass
class QueryPlan:
    """A planned query ready for SQL rendering."""

    ast: Select
    params: dict[str, Any] = field(default_factory=dict)
    base_table: str = ""
    tables: list[str] = field(default_factory=list)
    dimensions: list[str] = field(default_factory=list)
    measures: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class AggregatePlanner:
    """Plans the fact-aggregation and KPI request shapes.

    Both shapes share the same FROM/JOIN/WHERE/GROUP BY treatment and differ
    only in the measure columns they select.
    """

    def plan_facts(
        self,
        facts: list[Fact],
        join_plan: JoinPlan,
        *,
        selected: Sequence[int] = (),
        filters: Sequence[QueryFilter] = (),
        aggregation: AggregationFunction | None = None,
    ) -> QueryPlan:
        tree = JoinTree(join_plan.edges + join_plan.links)
        reachable = tree.reachable(join_plan.base_table)
        warnings = list(join_plan.warnings)

        measures: list[tuple[Expr, str]] = []
        for fact in facts:
            if fact.table not in reachable:
                warnings.append(
                    f"Fact '{fact.name}' dropped: table '{fact.table}' has no join path "
                    f"to '{join_plan.base_table}'"
                )
                continue
            agg = aggregation or fact.aggregate_function
            measures.append((func(agg.value, col(fact.column, fact.table)), fact.name))

        return self._assemble(measures, join_plan, tree, reachable, selected, filters, warnings)

    def plan_kpi(
        self,
        kpi_name: str,
        expansion: KpiExpansion,
        join_plan: JoinPlan,
        *,
        selected: Sequence[int] = (),
        filters: Sequence[QueryFilter] = (),
    ) -> QueryPlan:
        tree = JoinTree(join_plan.edges + join_plan.links)
        reachable = tree.reachable(join_plan.base_table)
        warnings = list(join_plan.warnings)
        for fact in expansion.facts:
            if fact.table not in reachable:
                warnings.append(
                    f"KPI '{kpi_name}' references fact '{fact.name}' on table '{fact.table}', "
                    f"which has no join path to '{join_plan.base_table}'"
                )

        measures: list[tuple[Expr, str]] = [(RawSQL(sql=f"{expansion.sql} AS value"), "value")]
        plan = self._assemble(measures, join_plan, tree, reachable, selected, filters, warnings)
        plan.measures = [kpi_name]
        return plan

    def _assemble(
        self,
        measures: list[tuple[Expr, str]],
        join_plan: JoinPlan,
        tree: JoinTree,
        reachable: set[str],
        selected: Sequence[int],
        filters: Sequence[QueryFilter],
        warnings: list[str],
    ) -> QueryPlan:
        builder = QueryBuilder()
        by_id: dict[int, ResolvedDimension] = {}
        for rd in join_plan.dimensions:
            if rd.display_table in reachable:
                by_id[rd.dimension.id] = rd
            else:
                warnings.append(
                    f"Dimension '{rd.name}' dropped: table '{rd.display_table}' has no join "
                    f"path to '{join_plan.base_table}'"
                )

        requested = list(dict.fromkeys(selected))
        chosen = [by_id[d] for d in requested if d in by_id]
        if requested and not chosen:
            dropped = [d.name for d in join_plan.dropped if d.id in requested]
            dropped += [
                rd.name for rd in join_plan.dimensions if rd.dimension.id in requested
            ]
            raise NoResolvableDimensionsError(dropped, warnings)

        # SELECT: measures
        for expr, name in measures:
            if isinstance(expr, RawSQL):
                builder.select(expr)
            else:
                builder.select_aliased(expr, name)

        # SELECT: dimension columns, each selected once
        group_cols: list[ColumnRef] = []
        aliases: set[str] = {name for _, name in measures}
        for rd in chosen:
            ref = col(rd.display_column, rd.display_table)
            if ref in group_cols:
                continue
            label = _unique_label(aliases, rd.display_column, rd.name)
            aliases.add(label)
            builder.select(AliasedExpr(expr=ref, alias=label))
            group_cols.append(ref)

        # FROM / JOIN: inner equi-joins, so fact rows without a dimension match drop out
        builder.from_(join_plan.base_table)
        tables = [join_plan.base_table]
        for step in tree.steps_from(join_plan.base_table):
            builder.join(
                step.table, on=tree.build_join_condition(step), join_type=JoinType.INNER
            )
            tables.append(step.table)

        # WHERE: equality, or IN for list values
        for flt in filters:
            rd = by_id.get(flt.dimension_id)
            if rd is None:
                warnings.append(f"Filter on dimension {flt.dimension_id} ignored: not joinable")
                continue
            if isinstance(flt.value, list | tuple) and not flt.value:
                warnings.append(f"Filter on dimension '{rd.name}' ignored: empty value list")
                continue
            ref = col(rd.display_column, rd.display_table)
            builder.where(self._filter_expr(builder, ref, flt.value))

        # GROUP BY
        builder.group_by(*group_cols)

        return QueryPlan(
            ast=builder.build(),
            params=builder.params,
            base_table=join_plan.base_table,
            tables=tables,
            dimensions=[rd.name for rd in chosen],
            measures=[name for _, name in measures],
            warnings=warnings,
        )

    @staticmethod
    def _filter_expr(builder: QueryBuilder, ref: ColumnRef, value: Any) -> Expr:
        if isinstance(value, list | tuple):
            return in_(ref, [builder.bind(v) for v in value])
        return eq(ref, builder.bind(value))


def _unique_label(taken: set[str], *candidates: str) -> str:
    """First candidate not in ``taken``, else the last one with a numeric suffix."""
    for candidate in candidates:
        if candidate not in taken:
            return candidate
    base = candidates[-1]
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"
