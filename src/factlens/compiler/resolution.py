"""Resolve (fact, dimension) pairs to equi-join edges.

Explicit mappings win. Without one, a dimension on the fact's own table is
selected directly; otherwise both tables are introspected and the first
column name they share (in the fact table's catalog order) becomes the join
key on both sides.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from factlens.models.errors import FactlensError
from factlens.models.semantic import Dimension, Fact, FactDimensionMapping

logger = logging.getLogger(__name__)


class NoResolvableDimensionsError(FactlensError):
    """Every requested dimension was dropped by the join resolver."""

    code = "NO_RESOLVABLE_DIMENSIONS"
    status = 422

    def __init__(self, dimension_names: list[str], warnings: list[str] | None = None) -> None:
        self.dimension_names = dimension_names
        self.warnings = warnings or []
        super().__init__(
            "None of the requested dimensions could be joined to the requested facts: "
            + ", ".join(dimension_names)
        )


class ColumnCatalog(Protocol):
    """Anything that can list the columns of several tables at once."""

    def columns_for(self, tables: Iterable[str]) -> dict[str, list[str]]: ...


@dataclass(frozen=True)
class JoinEdge:
    """``table.dimension_column = fact_table.fact_column``."""

    table: str
    dimension_column: str
    fact_table: str
    fact_column: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.table, self.dimension_column)


@dataclass
class ResolvedDimension:
    """A requested dimension and where to select it from."""

    dimension: Dimension
    display_table: str
    display_column: str
    fact_ids: list[int] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.dimension.name


@dataclass
class JoinPlan:
    """Output of :class:`JoinResolver`.

    ``edges`` is deduplicated by ``(table, dimension_column)``; ``links`` keeps
    every per-fact edge so the assembler can connect each fact table.
    """

    base_table: str
    edges: list[JoinEdge] = field(default_factory=list)
    links: list[JoinEdge] = field(default_factory=list)
    dimensions: list[ResolvedDimension] = field(default_factory=list)
    dropped: list[Dimension] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class JoinResolver:
    """Builds a :class:`JoinPlan` for a set of facts and dimensions."""

    def resolve(
        self,
        facts: list[Fact],
        dimensions: list[Dimension],
        mappings: list[FactDimensionMapping],
        catalog: ColumnCatalog | None = None,
    ) -> JoinPlan:
        if not facts:
            raise ValueError("At least one fact is required to resolve joins")

        plan = JoinPlan(base_table=facts[0].table)
        explicit = {(m.fact_id, m.dimension_id): m for m in mappings}

        # Introspect every table an unmapped, cross-table pair needs, once each
        needed: set[str] = set()
        for dim in dimensions:
            for fact in facts:
                if (fact.id, dim.id) not in explicit and dim.table != fact.table:
                    needed.update((fact.table, dim.table))
        columns: dict[str, list[str]] = {}
        if needed:
            if catalog is None:
                plan.warnings.append(
                    "Schema introspection unavailable; unmapped dimensions on other tables "
                    "cannot be joined"
                )
            else:
                columns = catalog.columns_for(sorted(needed))

        seen_edges: set[tuple[str, str]] = set()
        for dim in dimensions:
            resolved: ResolvedDimension | None = None
            for fact in facts:
                edge, display = self._resolve_pair(fact, dim, explicit, columns, plan.warnings)
                if display is None:
                    continue
                if edge is not None:
                    plan.links.append(edge)
                    if edge.key not in seen_edges:
                        seen_edges.add(edge.key)
                        plan.edges.append(edge)
                if resolved is None:
                    resolved = ResolvedDimension(
                        dimension=dim, display_table=display[0], display_column=display[1]
                    )
                resolved.fact_ids.append(fact.id)

            if resolved is None:
                plan.dropped.append(dim)
                plan.warnings.append(
                    f"Dimension '{dim.name}' could not be joined to any requested fact"
                )
            else:
                plan.dimensions.append(resolved)

        if plan.dropped:
            logger.info(
                "Dropped %d of %d dimension(s): %s",
                len(plan.dropped),
                len(dimensions),
                ", ".join(d.name for d in plan.dropped),
            )
        return plan

    def _resolve_pair(
        self,
        fact: Fact,
        dim: Dimension,
        explicit: dict[tuple[int, int], FactDimensionMapping],
        columns: dict[str, list[str]],
        warnings: list[str],
    ) -> tuple[JoinEdge | None, tuple[str, str] | None]:
        """Return ``(edge, (display_table, display_column))`` for one pair.

        ``(None, None)`` means the pair cannot be joined.
        """
        mapping = explicit.get((fact.id, dim.id))
        if mapping is not None:
            edge = JoinEdge(
                table=mapping.join_table,
                dimension_column=mapping.dimension_column,
                fact_table=fact.table,
                fact_column=mapping.fact_column,
            )
            return edge, (mapping.join_table, dim.column)

        if dim.table == fact.table:
            return None, (fact.table, dim.column)

        fact_cols = columns.get(fact.table, [])
        dim_cols = columns.get(dim.table, [])
        if not dim_cols:
            return None, None
        if dim.column not in dim_cols:
            warnings.append(
                f"Column '{dim.column}' of dimension '{dim.name}' not found in table '{dim.table}'"
            )
            return None, None

        common = common_column(fact_cols, dim_cols)
        if common is None:
            logger.debug("No common column between '%s' and '%s'", fact.table, dim.table)
            return None, None
        edge = JoinEdge(
            table=dim.table, dimension_column=common, fact_table=fact.table, fact_column=common
        )
        return edge, (dim.table, dim.column)


def common_column(fact_columns: list[str], dimension_columns: list[str]) -> str | None:
    """First column of ``fact_columns`` that also appears in ``dimension_columns``."""
    dim_set = set(dimension_columns)
    return next((c for c in fact_columns if c in dim_set), None)
