"""Tests for sqlglot-based SQL validation and the read-only guard."""

from __future__ import annotations

import pytest

from factlens.compiler.validator import UnsafeSQLError, ensure_select, validate_sql


class TestValidateSQL:
    def test_valid_postgres(self) -> None:
        assert validate_sql('SELECT SUM("orders"."amount") FROM "orders"', "postgres") == []

    def test_valid_mysql(self) -> None:
        assert validate_sql("SELECT SUM(`orders`.`amount`) FROM `orders`", "mysql") == []

    def test_invalid_sql_reported(self) -> None:
        errors = validate_sql("SELECT SUM(amount FROM orders", "postgres")
        assert len(errors) == 1

    def test_unknown_dialect(self) -> None:
        errors = validate_sql("SELECT 1", "oracle")
        assert errors == ["Unknown dialect 'oracle', skipping SQL validation"]


class TestEnsureSelect:
    def test_select_allowed(self) -> None:
        ensure_select('SELECT "a" FROM "t" GROUP BY "a"', "postgres")

    def test_union_allowed(self) -> None:
        ensure_select("SELECT 1 UNION SELECT 2", "mysql")

    @pytest.mark.parametrize(
        "sql",
        [
            'DELETE FROM "orders"',
            "UPDATE orders SET amount = 0",
            "INSERT INTO orders (amount) VALUES (1)",
            "DROP TABLE orders",
        ],
    )
    def test_writes_rejected(self, sql: str) -> None:
        with pytest.raises(UnsafeSQLError) as exc_info:
            ensure_select(sql, "postgres")
        assert exc_info.value.code == "UNSAFE_SQL"
        assert exc_info.value.sql == sql

    def test_multiple_statements_rejected(self) -> None:
        with pytest.raises(UnsafeSQLError, match="expected one statement"):
            ensure_select("SELECT 1; DROP TABLE orders", "postgres")

    def test_unparseable_single_statement_passes(self) -> None:
        ensure_select("SELECT SUM(amount FROM orders", "postgres")

    def test_unparseable_statement_with_separator_rejected(self) -> None:
        sql = "SELECT SUM(amount FROM orders; DROP TABLE orders"
        with pytest.raises(UnsafeSQLError, match="more than one statement"):
            ensure_select(sql, "postgres")

    def test_semicolon_in_string_literal_is_not_a_separator(self) -> None:
        ensure_select("SELECT SUM(amount FROM orders WHERE note = 'a;b'", "postgres")
