"""Infer and persist fact-dimension mappings from shared column names."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import sqlalchemy.exc

from factlens.compiler.resolution import common_column
from factlens.models.errors import FactlensError
from factlens.models.semantic import Dimension, Fact, FactDimensionMapping
from factlens.service.introspection import IntrospectionError, SchemaIntrospector
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger(__name__)


@dataclass
class AutoMapResult:
    created: list[FactDimensionMapping] = field(default_factory=list)
    skipped: int = 0
    failures: list[str] = field(default_factory=list)


class AutoMapper:
    """Creates one mapping per unmapped (fact, dimension) pair that shares a column.

    Each pair is handled on its own: a failure is logged and recorded, and
    the remaining pairs are still processed.
    """

    def __init__(self, repository: MetadataRepository) -> None:
        self._repo = repository

    def run(self, connection_id: int, introspector: SchemaIntrospector) -> AutoMapResult:
        facts = self._repo.list_facts(connection_id)
        dimensions = self._repo.list_dimensions(connection_id)
        result = AutoMapResult()
        if not facts or not dimensions:
            return result

        existing = {
            (m.fact_id, m.dimension_id)
            for m in self._repo.list_mappings([f.id for f in facts], [d.id for d in dimensions])
        }

        tables = {f.table for f in facts} | {d.table for d in dimensions}
        try:
            introspector.columns_for(sorted(tables))
        except IntrospectionError as exc:
            # Per-pair lookups below retry and record the failing tables
            logger.warning("Bulk introspection failed, falling back per table: %s", exc)

        for dim in dimensions:
            for fact in facts:
                if (fact.id, dim.id) in existing or fact.table == dim.table:
                    result.skipped += 1
                    continue
                try:
                    mapping = self._infer(fact, dim, introspector)
                    if mapping is None:
                        continue
                    result.created.extend(self._repo.add_mappings([mapping]))
                    existing.add((fact.id, dim.id))
                except (FactlensError, ValueError, sqlalchemy.exc.SQLAlchemyError) as exc:
                    logger.warning(
                        "Auto-map failed for fact '%s' / dimension '%s': %s",
                        fact.name,
                        dim.name,
                        exc,
                    )
                    result.failures.append(f"{fact.name} / {dim.name}: {exc}")

        logger.info(
            "Auto-map on connection %d: %d created, %d skipped, %d failed",
            connection_id,
            len(result.created),
            result.skipped,
            len(result.failures),
        )
        return result

    @staticmethod
    def _infer(
        fact: Fact, dim: Dimension, introspector: SchemaIntrospector
    ) -> FactDimensionMapping | None:
        dim_cols = introspector.columns(dim.table)
        if dim.column not in dim_cols:
            return None
        common = common_column(introspector.columns(fact.table), dim_cols)
        if common is None:
            return None
        return FactDimensionMapping(
            fact_id=fact.id,
            dimension_id=dim.id,
            join_table=dim.table,
            fact_column=common,
            dimension_column=common,
        )
