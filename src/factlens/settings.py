"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the FactLens REST API and MCP servers.

    Values are read from environment variables and from a ``.env`` file
    in the working directory.  See ``.env.example`` for all options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # Metadata store: SQLAlchemy URL wins over a YAML catalog
    metadata_db_url: str | None = None
    catalog_path: str | None = None

    # REST API
    api_server_host: str = "localhost"
    api_server_port: int = 8000
    port: int | None = None  # Cloud Run injects PORT; takes precedence over api_server_port

    @property
    def effective_port(self) -> int:
        """Return the port to listen on (Cloud Run PORT takes precedence)."""
        return self.port if self.port is not None else self.api_server_port

    # MCP
    mcp_transport: str = "stdio"
    mcp_server_host: str = "localhost"
    mcp_server_port: int = 9000

    # Connection pools (per-connection values in the metadata store override these)
    postgres_pool_size: int = 20
    postgres_connect_timeout_ms: int = 5000
    mysql_pool_size: int = 10
    mysql_connect_timeout_ms: int = 10000
    pool_acquire_timeout: float = 30.0  # seconds to wait for a free pooled connection

    # Compiler
    introspection_workers: int = 4
    kpi_sum_only: bool = False  # legacy: expand every KPI fact reference with SUM
    validate_sql: bool = True
