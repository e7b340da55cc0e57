"""Read interface to the metadata-store collaborator.

The compiler treats every row as an immutable snapshot for the duration of
one request; only auto-map writes back (new join mappings).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from factlens.models.report import Report
from factlens.models.semantic import KPI, Connection, Dimension, Fact, FactDimensionMapping


class MetadataRepository(ABC):
    @abstractmethod
    def get_connection(self, connection_id: int) -> Connection | None: ...

    @abstractmethod
    def list_facts(self, connection_id: int) -> list[Fact]: ...

    @abstractmethod
    def get_facts(self, connection_id: int, fact_ids: list[int]) -> list[Fact]:
        """Facts with the given ids that belong to the connection, in request order."""

    @abstractmethod
    def list_dimensions(self, connection_id: int) -> list[Dimension]: ...

    @abstractmethod
    def get_dimensions(self, connection_id: int, dimension_ids: list[int]) -> list[Dimension]:
        """Dimensions with the given ids that belong to the connection, in request order."""

    @abstractmethod
    def list_mappings(
        self, fact_ids: list[int], dimension_ids: list[int] | None = None
    ) -> list[FactDimensionMapping]: ...

    @abstractmethod
    def get_kpi(self, connection_id: int, kpi_id: int) -> KPI | None: ...

    @abstractmethod
    def get_report(self, report_id: int) -> Report | None: ...

    @abstractmethod
    def add_mappings(self, mappings: list[FactDimensionMapping]) -> list[FactDimensionMapping]:
        """Persist new mappings and return them with ids assigned."""
