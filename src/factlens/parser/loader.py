"""Load a YAML catalog of connections, facts, dimensions, KPIs, and reports.

A catalog is a stand-in for the relational metadata store, for local runs
and tests::

    connections:
      - id: 1
        type: postgres
        hostname: localhost
        port: 5432
        database: shop
        username: analyst
        password_env: SHOP_PASSWORD
    facts:
      - {id: 1, connection_id: 1, name: Revenue, table: orders, column: amount}
    dimensions:
      - {id: 1, connection_id: 1, name: Region, table: regions, column: name}
    mappings:
      - {fact_id: 1, dimension_id: 1, join_table: regions,
         fact_column: region_id, dimension_column: region_id}
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from factlens.models.report import Report
from factlens.models.semantic import KPI, Connection, Dimension, Fact, FactDimensionMapping
from factlens.storage.memory_repo import InMemoryMetadataRepository

# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

_MAX_DOCUMENT_SIZE = 5_000_000  # characters
_MAX_NODE_COUNT = 50_000
_MAX_DEPTH = 20

# Anchor definitions (&name) outside quoted strings, roughly
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)

_SECTIONS = ("connections", "facts", "dimensions", "mappings", "kpis", "reports")


class CatalogError(Exception):
    """A catalog document is malformed or internally inconsistent."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class YAMLSafetyError(CatalogError):
    """Oversized, anchor-using, or excessively nested input."""


class CatalogLoader:
    """Parses catalog YAML with ruamel.yaml into an in-memory repository."""

    def __init__(self) -> None:
        self._yaml = YAML(typ="safe")
        self._yaml.max_depth = _MAX_DEPTH

    # -- safety checks -------------------------------------------------------

    @staticmethod
    def _check_yaml_safety(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise YAMLSafetyError(
                f"YAML document exceeds maximum size "
                f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
            )
        if _ANCHOR_RE.search(content):
            raise YAMLSafetyError("YAML anchors/aliases are not supported in catalogs")

    @staticmethod
    def _check_node_count(data: Any, limit: int = _MAX_NODE_COUNT) -> None:
        count = 0
        stack: list[Any] = [data]
        while stack:
            node = stack.pop()
            count += 1
            if count > limit:
                raise YAMLSafetyError(f"YAML document exceeds maximum node count ({limit:,})")
            if isinstance(node, dict):
                stack.extend(node.values())
            elif isinstance(node, list):
                stack.extend(node)

    # -- public loading API --------------------------------------------------

    def load_file(self, path: str | Path) -> InMemoryMetadataRepository:
        with Path(path).open("r", encoding="utf-8") as handle:
            return self.load_string(handle.read())

    def load_string(self, content: str) -> InMemoryMetadataRepository:
        self._check_yaml_safety(content)
        try:
            data = self._yaml.load(content)
        except YAMLError as exc:
            raise CatalogError(f"Invalid YAML: {exc}") from exc
        if data is None:
            return InMemoryMetadataRepository()
        if not isinstance(data, dict):
            raise CatalogError("Catalog root must be a mapping")
        self._check_node_count(data)
        unknown = sorted(set(data) - set(_SECTIONS))
        if unknown:
            raise CatalogError(f"Unknown section(s): {', '.join(unknown)}")
        return self.build(data)

    def build(self, data: dict[str, Any]) -> InMemoryMetadataRepository:
        """Validate every section and cross-reference before populating the repository."""
        repo = InMemoryMetadataRepository()

        connections: list[Connection] = []
        for i, item in enumerate(self._section(data, "connections")):
            path = f"connections[{i}]"
            connections.append(self._parse(Connection, self._with_password(item, path), path))
        for conn in connections:
            repo.add_connection(conn)
        known_connections = {c.id for c in connections}

        facts = self._owned(data, "facts", Fact, known_connections)
        dimensions = self._owned(data, "dimensions", Dimension, known_connections)
        kpis = self._owned(data, "kpis", KPI, known_connections)
        reports = self._owned(data, "reports", Report, known_connections)
        for fact in facts:
            repo.add_fact(fact)
        for dim in dimensions:
            repo.add_dimension(dim)
        for kpi in kpis:
            repo.add_kpi(kpi)
        for report in reports:
            repo.add_report(report)

        fact_conn = {f.id: f.connection_id for f in facts}
        dim_conn = {d.id: d.connection_id for d in dimensions}
        mappings: list[FactDimensionMapping] = []
        seen: set[tuple[int, int]] = set()
        for i, item in enumerate(self._section(data, "mappings")):
            path = f"mappings[{i}]"
            mapping = self._parse(FactDimensionMapping, item, path)
            if mapping.fact_id not in fact_conn:
                raise CatalogError(f"unknown fact {mapping.fact_id}", path)
            if mapping.dimension_id not in dim_conn:
                raise CatalogError(f"unknown dimension {mapping.dimension_id}", path)
            if fact_conn[mapping.fact_id] != dim_conn[mapping.dimension_id]:
                raise CatalogError("fact and dimension belong to different connections", path)
            pair = (mapping.fact_id, mapping.dimension_id)
            if pair in seen:
                raise CatalogError(f"duplicate mapping for fact/dimension pair {pair}", path)
            seen.add(pair)
            mappings.append(mapping)
        if mappings:
            repo.add_mappings(mappings)

        report_ids = {r.id for r in reports}
        for report in reports:
            for target in report.drill_targets:
                if target.target_report_id not in report_ids:
                    raise CatalogError(
                        f"drill target {target.target_report_id} is not a known report",
                        f"reports[id={report.id}]",
                    )
        return repo

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _section(data: dict[str, Any], name: str) -> list[Any]:
        section = data.get(name) or []
        if not isinstance(section, list):
            raise CatalogError("must be a list", name)
        return section

    @staticmethod
    def _parse(model: type[BaseModel], item: Any, path: str) -> Any:
        if not isinstance(item, dict):
            raise CatalogError("must be a mapping", path)
        try:
            return model.model_validate(item)
        except ValidationError as exc:
            raise CatalogError(str(exc), path) from exc

    @staticmethod
    def _with_password(item: Any, path: str) -> Any:
        """Resolve ``password_env`` to the named environment variable."""
        if not isinstance(item, dict) or "password_env" not in item:
            return item
        resolved = dict(item)
        env_name = resolved.pop("password_env")
        if env_name not in os.environ:
            raise CatalogError(f"environment variable '{env_name}' is not set", path)
        resolved["password"] = os.environ[env_name]
        return resolved

    def _owned(
        self,
        data: dict[str, Any],
        section: str,
        model: type[BaseModel],
        known_connections: set[int],
    ) -> list[Any]:
        """Parse a section whose entries belong to a connection; names unique per connection."""
        parsed: list[Any] = []
        names: set[tuple[int, str]] = set()
        ids: set[int] = set()
        for i, item in enumerate(self._section(data, section)):
            path = f"{section}[{i}]"
            obj = self._parse(model, item, path)
            if obj.connection_id not in known_connections:
                raise CatalogError(f"unknown connection {obj.connection_id}", path)
            if obj.id in ids:
                raise CatalogError(f"duplicate id {obj.id}", path)
            key = (obj.connection_id, obj.name.lower())
            if key in names:
                raise CatalogError(f"duplicate name '{obj.name}' on connection", path)
            ids.add(obj.id)
            names.add(key)
            parsed.append(obj)
        return parsed
