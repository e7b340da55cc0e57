"""Process-scoped registry of pooled SQLAlchemy engines, one per connection id."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import sqlalchemy.exc
from sqlalchemy import URL, Engine, create_engine, event, text
from sqlalchemy import Connection as SAConnection

from factlens.dialect.base import Dialect
from factlens.dialect.registry import DialectRegistry
from factlens.models.errors import FactlensError
from factlens.models.semantic import Connection
from factlens.settings import Settings
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger(__name__)


class UnknownConnectionError(FactlensError):
    code = "UNKNOWN_CONNECTION"
    status = 404

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        super().__init__(f"Unknown connection '{connection_id}'")


class UnauthorizedConnectionError(FactlensError):
    code = "UNAUTHORIZED_CONNECTION"
    status = 403

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection '{connection_id}' is not owned by the requesting user")


class PoolAcquisitionError(FactlensError):
    """Credentials rejected, host unreachable, or the pool could not be built."""

    code = "POOL_ACQUISITION_FAILED"
    status = 502

    def __init__(self, connection_id: int, reason: str) -> None:
        self.connection_id = connection_id
        super().__init__(f"Could not obtain a connection for '{connection_id}': {reason}")


class PoolExhaustedError(PoolAcquisitionError):
    """Every pooled connection stayed busy past the acquire timeout."""

    code = "POOL_EXHAUSTED"
    status = 503
    retryable = True


@dataclass(frozen=True)
class PooledConnection:
    """A live pool plus the dialect used to talk to it."""

    connection: Connection
    engine: Engine
    dialect: Dialect

    @property
    def schema(self) -> str | None:
        return self.connection.selected_db

    @contextmanager
    def lease(self) -> Iterator[SAConnection]:
        """Check out a connection; it goes back to the pool on exit, error or not."""
        try:
            conn = self.engine.connect()
        except sqlalchemy.exc.TimeoutError as exc:
            raise PoolExhaustedError(
                self.connection.id, "timed out waiting for a free pooled connection"
            ) from exc
        except sqlalchemy.exc.DBAPIError as exc:
            logger.warning("Connect failed for connection %d: %s", self.connection.id, exc)
            raise PoolAcquisitionError(self.connection.id, "database unreachable") from exc
        try:
            yield conn
        finally:
            conn.close()


EngineFactory = Callable[[Connection, Dialect, Settings], Engine]


def build_engine(connection: Connection, dialect: Dialect, settings: Settings) -> Engine:
    """Create a bounded QueuePool engine for ``connection``.

    Pool size and connect timeout come from the connection row when set,
    otherwise from the dialect's defaults in ``settings``.
    """
    defaults = dialect.pool_options(settings)
    pool_size = connection.max_connections or defaults.pool_size
    connect_timeout_ms = connection.command_timeout or defaults.connect_timeout_ms

    url = URL.create(
        dialect.driver_name,
        username=connection.username,
        password=connection.password,
        host=connection.host,
        port=connection.port,
        database=connection.database,
    )
    engine = create_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=settings.pool_acquire_timeout,
        pool_pre_ping=True,
        connect_args=dialect.connect_args(connect_timeout_ms),
    )
    if connection.selected_db:
        apply_default_schema(engine, dialect.default_schema_sql(connection.selected_db))
    return engine


def apply_default_schema(engine: Engine, statement: str) -> None:
    """Run ``statement`` on every new physical connection the pool opens."""

    @event.listens_for(engine, "connect")
    def _set_default_schema(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(statement)
        finally:
            cursor.close()
        # SET search_path is transactional on postgres; make it stick
        dbapi_connection.commit()


class PoolRegistry:
    """Maps connection ids to pooled engines, created lazily and kept for the process lifetime.

    Creation is single-flight per connection id: concurrent first requests
    for the same id wait on a per-id lock and share one engine. Failed
    creations are not memoized.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        settings: Settings | None = None,
        engine_factory: EngineFactory = build_engine,
    ) -> None:
        self._repo = repository
        self._settings = settings or Settings()
        self._engine_factory = engine_factory
        self._lock = threading.Lock()
        self._create_locks: dict[int, threading.Lock] = {}
        self._pools: dict[int, PooledConnection] = {}

    def connection_for(self, connection_id: int, user_id: int | None = None) -> Connection:
        """Load a connection row, enforcing ownership when ``user_id`` is given."""
        connection = self._repo.get_connection(connection_id)
        if connection is None:
            raise UnknownConnectionError(connection_id)
        if user_id is not None and connection.owner_id is not None:
            if connection.owner_id != user_id:
                raise UnauthorizedConnectionError(connection_id)
        return connection

    def acquire(self, connection_id: int, user_id: int | None = None) -> PooledConnection:
        connection = self.connection_for(connection_id, user_id)

        with self._lock:
            pooled = self._pools.get(connection_id)
            if pooled is not None:
                return pooled
            create_lock = self._create_locks.setdefault(connection_id, threading.Lock())

        with create_lock:
            with self._lock:
                pooled = self._pools.get(connection_id)
            if pooled is None:
                pooled = self._create(connection)
                with self._lock:
                    self._pools[connection_id] = pooled
        return pooled

    def _create(self, connection: Connection) -> PooledConnection:
        dialect = DialectRegistry.get(connection.dialect)
        engine = self._engine_factory(connection, dialect, self._settings)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except sqlalchemy.exc.TimeoutError as exc:
            engine.dispose()
            raise PoolExhaustedError(connection.id, "timed out opening the pool") from exc
        except sqlalchemy.exc.SQLAlchemyError as exc:
            engine.dispose()
            logger.warning(
                "Pool creation failed for connection %d (%s): %s",
                connection.id,
                connection.dialect,
                exc,
            )
            raise PoolAcquisitionError(connection.id, "database unreachable") from exc
        logger.info(
            "Created %s pool for connection %d (%s:%s/%s)",
            dialect.name,
            connection.id,
            connection.host,
            connection.port,
            connection.database,
        )
        return PooledConnection(connection=connection, engine=engine, dialect=dialect)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._pools)

    def dispose(self) -> None:
        """Drain every pool. The registry stays usable and recreates pools on demand."""
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
            self._create_locks.clear()
        for pooled in pools:
            pooled.engine.dispose()
        if pools:
            logger.info("Disposed %d connection pool(s)", len(pools))
