"""In-memory metadata store for development, YAML catalogs, and tests."""

from __future__ import annotations

import threading
from itertools import count

from factlens.models.report import Report
from factlens.models.semantic import KPI, Connection, Dimension, Fact, FactDimensionMapping
from factlens.storage.repository import MetadataRepository


class InMemoryMetadataRepository(MetadataRepository):
    """Dict-backed repository.  Thread-safe via ``threading.Lock``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: dict[int, Connection] = {}
        self._facts: dict[int, Fact] = {}
        self._dimensions: dict[int, Dimension] = {}
        self._mappings: dict[tuple[int, int], FactDimensionMapping] = {}
        self._kpis: dict[int, KPI] = {}
        self._reports: dict[int, Report] = {}
        self._mapping_ids = count(1)

    # -- population ----------------------------------------------------------

    def add_connection(self, connection: Connection) -> Connection:
        with self._lock:
            self._connections[connection.id] = connection
        return connection

    def add_fact(self, fact: Fact) -> Fact:
        with self._lock:
            self._facts[fact.id] = fact
        return fact

    def add_dimension(self, dimension: Dimension) -> Dimension:
        with self._lock:
            self._dimensions[dimension.id] = dimension
        return dimension

    def add_kpi(self, kpi: KPI) -> KPI:
        with self._lock:
            self._kpis[kpi.id] = kpi
        return kpi

    def add_report(self, report: Report) -> Report:
        with self._lock:
            self._reports[report.id] = report
        return report

    # -- MetadataRepository --------------------------------------------------

    def get_connection(self, connection_id: int) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def list_facts(self, connection_id: int) -> list[Fact]:
        with self._lock:
            return [f for f in self._facts.values() if f.connection_id == connection_id]

    def get_facts(self, connection_id: int, fact_ids: list[int]) -> list[Fact]:
        with self._lock:
            found = (self._facts.get(fid) for fid in fact_ids)
            return [f for f in found if f is not None and f.connection_id == connection_id]

    def list_dimensions(self, connection_id: int) -> list[Dimension]:
        with self._lock:
            return [d for d in self._dimensions.values() if d.connection_id == connection_id]

    def get_dimensions(self, connection_id: int, dimension_ids: list[int]) -> list[Dimension]:
        with self._lock:
            found = (self._dimensions.get(did) for did in dimension_ids)
            return [d for d in found if d is not None and d.connection_id == connection_id]

    def list_mappings(
        self, fact_ids: list[int], dimension_ids: list[int] | None = None
    ) -> list[FactDimensionMapping]:
        wanted_facts = set(fact_ids)
        wanted_dims = set(dimension_ids) if dimension_ids is not None else None
        with self._lock:
            return [
                m
                for (fid, did), m in self._mappings.items()
                if fid in wanted_facts and (wanted_dims is None or did in wanted_dims)
            ]

    def get_kpi(self, connection_id: int, kpi_id: int) -> KPI | None:
        with self._lock:
            kpi = self._kpis.get(kpi_id)
        if kpi is None or kpi.connection_id != connection_id:
            return None
        return kpi

    def get_report(self, report_id: int) -> Report | None:
        with self._lock:
            return self._reports.get(report_id)

    def add_mappings(self, mappings: list[FactDimensionMapping]) -> list[FactDimensionMapping]:
        saved: list[FactDimensionMapping] = []
        with self._lock:
            for mapping in mappings:
                key = (mapping.fact_id, mapping.dimension_id)
                if key in self._mappings:
                    raise ValueError(
                        f"Mapping for fact {mapping.fact_id} and dimension "
                        f"{mapping.dimension_id} already exists"
                    )
                stored = mapping.model_copy(update={"id": next(self._mapping_ids)})
                self._mappings[key] = stored
                saved.append(stored)
        return saved
