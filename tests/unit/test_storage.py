"""Tests for the in-memory and SQL metadata repositories."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import create_engine, insert
from sqlalchemy.exc import IntegrityError

from factlens.models.semantic import AggregationFunction, FactDimensionMapping
from factlens.settings import Settings
from factlens.storage import sql_repo
from factlens.storage.factory import build_repository
from factlens.storage.memory_repo import InMemoryMetadataRepository
from factlens.storage.sql_repo import SqlMetadataRepository


def _mapping(fact_id: int = 1, dimension_id: int = 1) -> FactDimensionMapping:
    return FactDimensionMapping(
        fact_id=fact_id,
        dimension_id=dimension_id,
        join_table="regions",
        fact_column="region_id",
        dimension_column="region_id",
    )


class TestInMemoryRepository:
    def test_get_facts_in_request_order(self, shop_repo) -> None:
        assert [f.id for f in shop_repo.get_facts(1, [2, 1, 99])] == [2, 1]

    def test_get_facts_scoped_to_connection(self, shop_repo) -> None:
        assert shop_repo.get_facts(1, [5]) == []
        assert [f.id for f in shop_repo.get_facts(2, [5])] == [5]

    def test_list_dimensions(self, shop_repo) -> None:
        assert [d.name for d in shop_repo.list_dimensions(1)] == ["Region", "Status", "Category"]

    def test_get_kpi_scoped_to_connection(self, shop_repo) -> None:
        assert shop_repo.get_kpi(1, 1).name == "Margin"
        assert shop_repo.get_kpi(2, 1) is None

    def test_add_mappings_assigns_ids(self, shop_repo) -> None:
        saved = shop_repo.add_mappings([_mapping(1, 1), _mapping(3, 1)])
        assert [m.id for m in saved] == [1, 2]
        assert len(shop_repo.list_mappings([1, 3])) == 2
        assert [m.fact_id for m in shop_repo.list_mappings([3], [1])] == [3]
        assert shop_repo.list_mappings([1], [2]) == []

    def test_duplicate_mapping_rejected(self, shop_repo) -> None:
        shop_repo.add_mappings([_mapping()])
        with pytest.raises(ValueError, match="already exists"):
            shop_repo.add_mappings([_mapping()])


@pytest.fixture
def sql_store(tmp_path) -> SqlMetadataRepository:
    engine = create_engine(f"sqlite:///{tmp_path / 'meta.db'}")
    sql_repo.metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(
            insert(sql_repo.connections).values(
                id=1,
                user_id=7,
                connection_name="shop",
                type="postgres",
                hostname="db.internal",
                port=5432,
                database="shop",
                username="analyst",
                password="secret",
                selected_db="",
                max_transport_objects=5,
            )
        )
        conn.execute(
            insert(sql_repo.facts),
            [
                {
                    "id": 1,
                    "connection_id": 1,
                    "name": "Revenue",
                    "table_name": "orders",
                    "column_name": "amount",
                    "aggregate_function": "sum",
                },
                {
                    "id": 2,
                    "connection_id": 1,
                    "name": "Price",
                    "table_name": "orders",
                    "column_name": "price",
                    "aggregate_function": "AVG",
                },
            ],
        )
        conn.execute(
            insert(sql_repo.dimensions).values(
                id=1, connection_id=1, name="Region", table_name="regions", column_name="name"
            )
        )
        conn.execute(
            insert(sql_repo.kpis).values(
                id=1, connection_id=1, name="Margin", expression="Revenue - Price"
            )
        )
        conn.execute(
            insert(sql_repo.reports).values(
                id=1, user_id=7, connection_id=1, name="Orders", base_table="orders"
            )
        )
        conn.execute(
            insert(sql_repo.reports).values(
                id=2, connection_id=1, name="Detail", base_table="orders"
            )
        )
        conn.execute(
            insert(sql_repo.report_columns),
            [
                {"report_id": 1, "column_name": "status", "order_index": 1},
                {"report_id": 1, "column_name": "id", "alias": "Order", "order_index": 0},
            ],
        )
        conn.execute(
            insert(sql_repo.report_filters),
            [
                {
                    "report_id": 1,
                    "column_name": "status",
                    "operator": "IN",
                    "value": json.dumps(["active", "pending"]),
                    "order_index": 0,
                },
                {
                    "report_id": 1,
                    "column_name": "region",
                    "operator": "=",
                    "value": "north",
                    "order_index": 1,
                },
            ],
        )
        conn.execute(
            insert(sql_repo.report_drillthrough).values(
                parent_report_id=1,
                target_report_id=2,
                mapping_json=json.dumps({"id": "order_id"}),
                label="Details",
            )
        )
    return SqlMetadataRepository(engine)


class TestSqlMetadataRepository:
    def test_get_connection(self, sql_store) -> None:
        conn = sql_store.get_connection(1)
        assert conn is not None
        assert conn.dialect == "postgres"
        assert conn.host == "db.internal"
        assert conn.owner_id == 7
        assert conn.selected_db is None
        assert conn.max_connections == 5

    def test_unknown_connection(self, sql_store) -> None:
        assert sql_store.get_connection(9) is None

    def test_facts(self, sql_store) -> None:
        facts = sql_store.get_facts(1, [2, 1])
        assert [f.name for f in facts] == ["Price", "Revenue"]
        assert facts[1].aggregate_function == AggregationFunction.SUM
        assert facts[1].table == "orders"
        assert sql_store.get_facts(2, [1]) == []
        assert [f.id for f in sql_store.list_facts(1)] == [1, 2]

    def test_dimensions(self, sql_store) -> None:
        assert [d.name for d in sql_store.get_dimensions(1, [1])] == ["Region"]
        assert sql_store.get_dimensions(1, []) == []

    def test_kpi(self, sql_store) -> None:
        assert sql_store.get_kpi(1, 1).expression == "Revenue - Price"
        assert sql_store.get_kpi(2, 1) is None

    def test_report(self, sql_store) -> None:
        report = sql_store.get_report(1)
        assert report is not None
        assert report.owner_id == 7
        assert [c.column_name for c in report.columns] == ["id", "status"]
        assert report.filters[0].value == ["active", "pending"]
        # Bare strings are not JSON; returned as stored
        assert report.filters[1].value == "north"
        assert report.drill_targets[0].mapping == {"id": "order_id"}
        assert report.drill_targets[0].label == "Details"

    def test_missing_report(self, sql_store) -> None:
        assert sql_store.get_report(99) is None

    def test_add_mappings(self, sql_store) -> None:
        saved = sql_store.add_mappings([_mapping()])
        assert saved[0].id is not None
        listed = sql_store.list_mappings([1])
        assert [(m.fact_id, m.dimension_id, m.join_table) for m in listed] == [
            (1, 1, "regions")
        ]

    def test_duplicate_mapping_rejected(self, sql_store) -> None:
        sql_store.add_mappings([_mapping()])
        with pytest.raises(IntegrityError):
            sql_store.add_mappings([_mapping()])


class TestBuildRepository:
    def test_sql_store_wins(self, tmp_path) -> None:
        settings = Settings(
            _env_file=None,
            metadata_db_url=f"sqlite:///{tmp_path / 'm.db'}",
            catalog_path="ignored.yaml",
        )
        assert isinstance(build_repository(settings), SqlMetadataRepository)

    def test_catalog_file(self, tmp_path) -> None:
        path = tmp_path / "catalog.yaml"
        path.write_text("facts: []\n", encoding="utf-8")
        repo = build_repository(Settings(_env_file=None, catalog_path=str(path)))
        assert isinstance(repo, InMemoryMetadataRepository)

    def test_empty_default(self) -> None:
        repo = build_repository(Settings(_env_file=None))
        assert isinstance(repo, InMemoryMetadataRepository)
        assert repo.get_connection(1) is None
