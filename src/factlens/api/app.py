"""FastAPI application factory for the FactLens semantic query service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from factlens import __version__
from factlens.api.deps import init_service, reset_service
from factlens.api.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from factlens.api.routers import connections, dialects, queries, reports
from factlens.api.schemas import HealthResponse
from factlens.models.errors import FactlensError, to_detail
from factlens.service.pool_registry import EngineFactory, PoolRegistry, build_engine
from factlens.service.semantic_service import SemanticService
from factlens.settings import Settings
from factlens.storage.factory import build_repository
from factlens.storage.repository import MetadataRepository

logger = logging.getLogger("factlens.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Create the pool registry at startup and drain every pool at shutdown."""
    settings: Settings = app.state.settings
    repository: MetadataRepository | None = app.state.repository
    if repository is None:
        repository = build_repository(settings)
    registry = PoolRegistry(repository, settings, engine_factory=app.state.engine_factory)
    app.state.registry = registry
    init_service(SemanticService(repository, registry, settings))
    try:
        yield
    finally:
        registry.dispose()
        reset_service()


async def factlens_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a :class:`FactlensError` as ``{"detail": ErrorDetail}``."""
    if not isinstance(exc, FactlensError):
        raise exc
    if exc.status >= 500:
        logger.warning("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(status_code=exc.status, content={"detail": to_detail(exc).model_dump()})


def create_app(
    settings: Settings | None = None,
    repository: MetadataRepository | None = None,
    engine_factory: EngineFactory = build_engine,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="FactLens Semantic Query Service",
        description="Compiles fact, KPI, and report requests into SQL and runs them.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.engine_factory = engine_factory

    # Middleware
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestTimingMiddleware)

    app.add_exception_handler(FactlensError, factlens_error_handler)

    app.include_router(queries.router, prefix="/queries", tags=["queries"])
    app.include_router(reports.router, prefix="/reports", tags=["reports"])
    app.include_router(connections.router, prefix="/connections", tags=["connections"])
    app.include_router(dialects.router, prefix="/dialects", tags=["dialects"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health(request: Request) -> HealthResponse:
        registry: PoolRegistry | None = getattr(request.app.state, "registry", None)
        return HealthResponse(
            status="ok",
            version=__version__,
            pools=registry.active_count if registry is not None else 0,
        )

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "FactLens API Server v%s starting (host=%s, port=%d)",
        __version__,
        settings.api_server_host,
        settings.effective_port,
    )

    uvicorn.run(
        "factlens.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
