"""Tests for auto-map and the semantic service facade."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, text

from factlens.models.errors import InvalidReferenceError
from factlens.models.query import FactQueryRequest, KpiQueryRequest, QueryFilter
from factlens.models.semantic import FactDimensionMapping
from factlens.service.automap import AutoMapper
from factlens.service.introspection import IntrospectionError
from factlens.service.pool_registry import UnauthorizedConnectionError, UnknownConnectionError
from factlens.service.semantic_service import SemanticService


class TestAutoMapper:
    def test_creates_mapping_for_shared_column(self, shop_repo, catalog) -> None:
        result = AutoMapper(shop_repo).run(1, catalog)
        created = {(m.fact_id, m.dimension_id): m for m in result.created}
        # Region joins every fact on region_id; Status (orders) joins Shipped the same way
        assert set(created) == {(1, 1), (2, 1), (3, 1), (4, 1), (3, 2)}
        assert created[(3, 1)].fact_column == "region_id"
        assert created[(3, 1)].join_table == "regions"
        assert result.failures == []
        assert len(shop_repo.list_mappings([1, 2, 3, 4])) == 5

    def test_skips_existing_and_same_table_pairs(self, shop_repo, catalog) -> None:
        shop_repo.add_mappings(
            [
                FactDimensionMapping(
                    fact_id=1,
                    dimension_id=1,
                    join_table="regions",
                    fact_column="region_id",
                    dimension_column="region_id",
                )
            ]
        )
        result = AutoMapper(shop_repo).run(1, catalog)
        assert (1, 1) not in {(m.fact_id, m.dimension_id) for m in result.created}
        # 1 existing pair plus Status on the three orders facts
        assert result.skipped == 4

    def test_second_run_creates_nothing(self, shop_repo, catalog) -> None:
        AutoMapper(shop_repo).run(1, catalog)
        result = AutoMapper(shop_repo).run(1, catalog)
        assert result.created == []

    def test_pair_failure_does_not_stop_the_run(self, shop_repo, catalog_factory) -> None:
        class FlakyCatalog(catalog_factory):
            def columns_for(self, tables):
                raise IntrospectionError(None, "bulk lookup failed")

            def columns(self, table):
                if table == "shipments":
                    raise IntrospectionError(table, "permission denied")
                return super().columns(table)

        result = AutoMapper(shop_repo).run(1, FlakyCatalog())
        assert {m.fact_id for m in result.created} == {1, 2, 4}
        assert len(result.failures) == 2
        assert result.failures[0].startswith("Shipped / Region")

    def test_empty_connection(self, shop_repo, catalog) -> None:
        result = AutoMapper(shop_repo).run(99, catalog)
        assert result.created == []
        assert catalog.requests == []


@pytest.fixture
def service(shop_repo, registry, settings) -> SemanticService:
    return SemanticService(shop_repo, registry, settings)


@pytest.mark.usefixtures("sqlite_catalog")
class TestSemanticService:
    def test_fact_query_rows(self, service) -> None:
        result = service.run_fact_query(
            1, FactQueryRequest(fact_ids=[1], dimension_ids=[2]), user_id=7
        )
        assert sorted(result.rows, key=lambda r: r["status"]) == [
            {"Revenue": 180.0, "status": "active"},
            {"Revenue": 50.0, "status": "inactive"},
        ]
        assert result.sql.startswith('SELECT SUM("orders"."amount") AS "Revenue"')

    def test_fact_query_joins_by_common_column(self, service) -> None:
        request = FactQueryRequest(
            fact_ids=[1],
            dimension_ids=[1],
            filters=[QueryFilter(dimension_id=1, value=["North"])],
        )
        result = service.run_fact_query(1, request)
        assert result.rows == [{"Revenue": 150.0, "name": "North"}]
        assert result.params == {"p0": "North"}
        assert result.resolved.tables == ["orders", "regions"]

    def test_rows_without_dimension_match_drop_out(self, service, shop_db) -> None:
        engine = create_engine(shop_db)
        with engine.begin() as conn:
            conn.execute(text("INSERT INTO orders VALUES (4, 9, 1000, 0, 'active', 1)"))
        engine.dispose()
        result = service.run_fact_query(1, FactQueryRequest(fact_ids=[1], dimension_ids=[1]))
        assert sorted(result.rows, key=lambda r: r["name"]) == [
            {"Revenue": 150.0, "name": "North"},
            {"Revenue": 80.0, "name": "South"},
        ]

    def test_kpi_query(self, service) -> None:
        result = service.run_kpi_query(1, KpiQueryRequest(kpi_id=1))
        assert result.rows == [{"value": 120.0}]

    def test_report_runtime_override(self, service) -> None:
        result = service.run_report(1, {"status": "inactive"}, user_id=7)
        assert result.rows == [{"Order": 2, "status": "inactive"}]
        assert result.params == {"p0": "inactive"}

    def test_report_stored_filter(self, service) -> None:
        result = service.run_report(1)
        assert sorted(r["Order"] for r in result.rows) == [1, 3]

    def test_unknown_report(self, service) -> None:
        with pytest.raises(InvalidReferenceError):
            service.run_report(42)

    def test_drill_through(self, service) -> None:
        result = service.drill_through(1, 2, {"region_id": 2, "status": "active"})
        assert result.rows == [{"region_id": 2, "name": "South"}]

    def test_drill_to_unlinked_report(self, service) -> None:
        with pytest.raises(InvalidReferenceError):
            service.drill_through(2, 1, {})

    def test_drill_config(self, service) -> None:
        (target,) = service.get_drill_config(1)
        assert target.target_report_id == 2
        assert target.label == "Region"

    def test_foreign_user_rejected_before_pool(self, service, engine_factory) -> None:
        with pytest.raises(UnauthorizedConnectionError):
            service.run_fact_query(1, FactQueryRequest(fact_ids=[1]), user_id=8)
        with pytest.raises(UnauthorizedConnectionError):
            service.run_report(1, user_id=8)
        assert engine_factory.calls == 0

    def test_unknown_connection(self, service) -> None:
        with pytest.raises(UnknownConnectionError):
            service.run_fact_query(9, FactQueryRequest(fact_ids=[1]))

    def test_invalid_reference_checked_before_pool(self, service, engine_factory) -> None:
        with pytest.raises(InvalidReferenceError):
            service.run_fact_query(1, FactQueryRequest(fact_ids=[99]))
        assert engine_factory.calls == 0

    def test_auto_map(self, service, shop_repo) -> None:
        result = service.auto_map(1)
        assert {(m.fact_id, m.dimension_id) for m in result.created} == {
            (1, 1),
            (2, 1),
            (3, 1),
            (4, 1),
            (3, 2),
        }

    def test_list_tables(self, service) -> None:
        assert service.list_tables(1) == ["orders", "regions", "shipments"]

    def test_describe_table(self, service) -> None:
        assert service.describe_table(1, "regions") == ["region_id", "name"]

    def test_describe_unknown_table(self, service) -> None:
        with pytest.raises(InvalidReferenceError) as exc_info:
            service.describe_table(1, "nope")
        assert exc_info.value.kind == "table"
