"""Tests for the report planner."""

from __future__ import annotations

import pytest

from factlens.compiler.report import ReportPlanner
from factlens.dialect.mysql import MySQLDialect
from factlens.dialect.postgres import PostgresDialect
from factlens.models.errors import InvalidReferenceError
from factlens.models.report import Report, ReportColumn, ReportFilter


def _report(**overrides: object) -> Report:
    values: dict[str, object] = {
        "id": 1,
        "connection_id": 1,
        "name": "Customers",
        "base_table": "customers",
        "columns": [
            ReportColumn(column_name="name", order_index=1),
            ReportColumn(column_name="id", order_index=0),
            ReportColumn(column_name="secret", visible=False),
        ],
        "filters": [ReportFilter(column_name="status", value="active", editable=True)],
    }
    values.update(overrides)
    return Report.model_validate(values)


class TestReportPlanner:
    def setup_method(self) -> None:
        self.planner = ReportPlanner()
        self.dialect = PostgresDialect()

    def _sql(self, report: Report, runtime: dict[str, object] | None = None) -> tuple[str, dict]:
        plan = self.planner.plan(report, runtime)
        return " ".join(self.dialect.compile(plan.ast).split()), plan.params

    def test_stored_filter(self) -> None:
        sql, params = self._sql(_report())
        assert sql == 'SELECT "id", "name" FROM "customers" WHERE ("status" = :p0)'
        assert params == {"p0": "active"}

    def test_runtime_filter_overrides_stored(self) -> None:
        sql, params = self._sql(_report(), {"status": "inactive"})
        assert sql.count("status") == 1
        assert params == {"p0": "inactive"}
        assert "active" not in params.values()

    def test_locked_filter_still_applies_with_runtime_value(self) -> None:
        report = _report(filters=[ReportFilter(column_name="region", value="north")])
        sql, params = self._sql(report, {"region": "south"})
        assert 'WHERE (("region" = :p0) AND ("region" = :p1))' in sql
        assert params == {"p0": "north", "p1": "south"}

    def test_empty_runtime_value_keeps_stored_filter(self) -> None:
        sql, params = self._sql(_report(), {"status": ""})
        assert sql.endswith('WHERE ("status" = :p0)')
        assert params == {"p0": "active"}

    def test_runtime_list_becomes_in(self) -> None:
        sql, params = self._sql(_report(), {"status": ["a", "b"]})
        assert 'WHERE ("status" IN (:p0, :p1))' in sql
        assert params == {"p0": "a", "p1": "b"}

    def test_runtime_filter_on_hidden_column(self) -> None:
        sql, params = self._sql(_report(), {"secret": "x"})
        assert '("secret" = :p1)' in sql
        assert params == {"p0": "active", "p1": "x"}

    def test_unknown_runtime_column(self) -> None:
        with pytest.raises(InvalidReferenceError) as exc_info:
            self.planner.plan(_report(), {"nope": 1})
        assert exc_info.value.kind == "report column"

    def test_empty_values_skipped(self) -> None:
        report = _report(
            filters=[
                ReportFilter(column_name="status", value=""),
                ReportFilter(column_name="name", value=None),
                ReportFilter(column_name="id", value=[]),
            ]
        )
        sql, params = self._sql(report, {"name": ""})
        assert "WHERE" not in sql
        assert params == {}

    def test_no_visible_columns_selects_star(self) -> None:
        sql, _ = self._sql(_report(columns=[], filters=[]))
        assert sql == 'SELECT * FROM "customers"'

    def test_column_alias(self) -> None:
        report = _report(columns=[ReportColumn(column_name="name", alias="Customer")], filters=[])
        sql, _ = self._sql(report)
        assert sql == 'SELECT "name" AS "Customer" FROM "customers"'

    def test_comparison_operators(self) -> None:
        report = _report(
            filters=[
                ReportFilter(column_name="age", operator=">=", value=18, order_index=1),
                ReportFilter(column_name="name", operator="like", value="A%", order_index=0),
            ]
        )
        sql, params = self._sql(report)
        assert 'WHERE (("name" LIKE :p0) AND ("age" >= :p1))' in sql
        assert params == {"p0": "A%", "p1": 18}

    def test_stored_list_filter(self) -> None:
        report = _report(filters=[ReportFilter(column_name="tier", value=["gold", "silver"])])
        sql, _ = self._sql(report)
        assert '("tier" IN (:p0, :p1))' in sql

    def test_stored_not_in(self) -> None:
        report = _report(
            filters=[ReportFilter(column_name="tier", operator="not  in", value=["x"])]
        )
        sql, _ = self._sql(report)
        assert '("tier" NOT IN (:p0))' in sql

    def test_not_equal_list_is_negated_in(self) -> None:
        report = _report(filters=[ReportFilter(column_name="tier", operator="<>", value=["x"])])
        sql, _ = self._sql(report)
        assert "NOT IN" in sql

    def test_disallowed_operator(self) -> None:
        report = _report(
            filters=[ReportFilter(column_name="x", operator="= 1 OR 1 =", value="y")]
        )
        with pytest.raises(InvalidReferenceError) as exc_info:
            self.planner.plan(report)
        assert exc_info.value.kind == "filter operator"

    def test_list_with_comparison_operator(self) -> None:
        report = _report(filters=[ReportFilter(column_name="x", operator=">", value=[1, 2])])
        with pytest.raises(InvalidReferenceError):
            self.planner.plan(report)

    def test_mysql(self) -> None:
        plan = self.planner.plan(_report(filters=[]))
        assert MySQLDialect().compile(plan.ast) == "SELECT `id`, `name`\nFROM `customers`"

    def test_plan_metadata(self) -> None:
        plan = self.planner.plan(_report())
        assert plan.base_table == "customers"
        assert plan.dimensions == ["id", "name"]
