"""Shared test fixtures for the FactLens semantic layer."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

import pytest
from sqlalchemy import Engine, create_engine, text

from factlens.dialect.base import Dialect
from factlens.dialect.postgres import PostgresDialect
from factlens.models.report import DrillTarget, Report, ReportColumn, ReportFilter
from factlens.models.semantic import KPI, Connection, Dimension, Fact
from factlens.service.pool_registry import EngineFactory, PoolRegistry
from factlens.settings import Settings
from factlens.storage.memory_repo import InMemoryMetadataRepository

SHOP_OWNER = 7

# Columns of the sample tables, in catalog order
SHOP_COLUMNS: dict[str, list[str]] = {
    "orders": ["order_id", "region_id", "amount", "cost", "status", "price"],
    "regions": ["region_id", "name"],
    "shipments": ["ship_id", "region_id", "qty"],
}

_SHOP_DDL = [
    "CREATE TABLE orders (order_id INTEGER PRIMARY KEY, region_id INTEGER, amount REAL, "
    "cost REAL, status TEXT, price REAL)",
    "CREATE TABLE regions (region_id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE shipments (ship_id INTEGER PRIMARY KEY, region_id INTEGER, qty INTEGER)",
    "INSERT INTO regions VALUES (1, 'North'), (2, 'South')",
    "INSERT INTO orders VALUES "
    "(1, 1, 100, 60, 'active', 10), (2, 1, 50, 20, 'inactive', 5), "
    "(3, 2, 80, 30, 'active', 8)",
    "INSERT INTO shipments VALUES (1, 1, 3), (2, 2, 4)",
]

# SQLite stand-ins for the information_schema catalog queries
SQLITE_COLUMNS_SQL = (
    "SELECT name FROM pragma_table_info(:table_name) "
    "WHERE COALESCE(:table_schema, 'main') <> '' ORDER BY cid"
)
SQLITE_TABLES_SQL = (
    "SELECT name FROM sqlite_master WHERE type = 'table' "
    "AND COALESCE(:table_schema, 'main') <> '' ORDER BY name"
)


class FakeCatalog:
    """In-memory column catalog; records which tables were looked up."""

    def __init__(self, columns: dict[str, list[str]] | None = None) -> None:
        self.tables = dict(SHOP_COLUMNS if columns is None else columns)
        self.requests: list[list[str]] = []

    def columns(self, table: str) -> list[str]:
        return list(self.tables.get(table, []))

    def columns_for(self, tables: Iterable[str]) -> dict[str, list[str]]:
        wanted = list(tables)
        self.requests.append(wanted)
        return {t: self.columns(t) for t in wanted}


def make_connection(**overrides: object) -> Connection:
    values: dict[str, object] = {
        "id": 1,
        "owner_id": SHOP_OWNER,
        "name": "shop",
        "dialect": "postgres",
        "host": "localhost",
        "port": 5432,
        "database": "shop",
        "username": "analyst",
        "password": "secret",
    }
    values.update(overrides)
    return Connection.model_validate(values)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def connection() -> Connection:
    return make_connection()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def catalog_factory() -> type[FakeCatalog]:
    return FakeCatalog


@pytest.fixture
def shop_repo(connection: Connection) -> InMemoryMetadataRepository:
    """Sample shop: orders/shipments facts, region/status dimensions, two reports."""
    repo = InMemoryMetadataRepository()
    repo.add_connection(connection)
    repo.add_connection(make_connection(id=2, owner_id=99, name="other"))
    for fact in (
        Fact(id=1, connection_id=1, name="Revenue", table="orders", column="amount"),
        Fact(id=2, connection_id=1, name="Cost", table="orders", column="cost"),
        Fact(id=3, connection_id=1, name="Shipped", table="shipments", column="qty"),
        Fact(
            id=4,
            connection_id=1,
            name="Avg Price",
            table="orders",
            column="price",
            aggregate_function="AVG",
        ),
        Fact(id=5, connection_id=2, name="Foreign", table="orders", column="amount"),
    ):
        repo.add_fact(fact)
    for dim in (
        Dimension(id=1, connection_id=1, name="Region", table="regions", column="name"),
        Dimension(id=2, connection_id=1, name="Status", table="orders", column="status"),
        Dimension(id=3, connection_id=1, name="Category", table="products", column="category"),
    ):
        repo.add_dimension(dim)
    repo.add_kpi(KPI(id=1, connection_id=1, name="Margin", expression="Revenue - Cost"))
    repo.add_kpi(KPI(id=2, connection_id=1, name="Nothing", expression="1 + 1"))
    repo.add_report(
        Report(
            id=1,
            connection_id=1,
            owner_id=SHOP_OWNER,
            name="Orders",
            base_table="orders",
            columns=[
                ReportColumn(column_name="status", order_index=1),
                ReportColumn(column_name="order_id", alias="Order", order_index=0),
                ReportColumn(column_name="region_id", visible=False, order_index=2),
            ],
            filters=[
                ReportFilter(column_name="status", operator="=", value="active", editable=True)
            ],
            drill_targets=[
                DrillTarget(target_report_id=2, mapping={"region_id": "region_id"}, label="Region")
            ],
        )
    )
    repo.add_report(
        Report(
            id=2,
            connection_id=1,
            name="Regions",
            base_table="regions",
            columns=[
                ReportColumn(column_name="region_id"),
                ReportColumn(column_name="name", order_index=1),
            ],
        )
    )
    return repo


@pytest.fixture
def shop_db(tmp_path: Path) -> str:
    """File-backed SQLite database with the sample tables; returns its URL."""
    url = f"sqlite:///{tmp_path / 'shop.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        for statement in _SHOP_DDL:
            conn.execute(text(statement))
    engine.dispose()
    return url


class CountingFactory:
    """Engine factory pointing every connection at one SQLite file."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.calls = 0

    def __call__(self, connection: Connection, dialect: Dialect, settings: Settings) -> Engine:
        self.calls += 1
        return create_engine(self.url, connect_args={"check_same_thread": False})


@pytest.fixture
def engine_factory(shop_db: str) -> CountingFactory:
    return CountingFactory(shop_db)


@pytest.fixture
def registry(
    shop_repo: InMemoryMetadataRepository, settings: Settings, engine_factory: EngineFactory
) -> Iterator[PoolRegistry]:
    reg = PoolRegistry(shop_repo, settings, engine_factory=engine_factory)
    yield reg
    reg.dispose()


@pytest.fixture
def sqlite_catalog(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the postgres catalog queries at SQLite's pragma tables."""
    monkeypatch.setattr(PostgresDialect, "columns_sql", lambda self: SQLITE_COLUMNS_SQL)
    monkeypatch.setattr(PostgresDialect, "tables_sql", lambda self: SQLITE_TABLES_SQL)
