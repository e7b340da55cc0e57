"""Dependency injection for FastAPI: SemanticService singleton and caller identity."""

from __future__ import annotations

from typing import Annotated

from fastapi import Header

from factlens.service.semantic_service import SemanticService

_service: SemanticService | None = None


def init_service(service: SemanticService) -> None:
    """Set the global SemanticService (called at app startup)."""
    global _service  # noqa: PLW0603
    _service = service


def get_service() -> SemanticService:
    """FastAPI ``Depends`` provider for SemanticService."""
    if _service is None:
        raise RuntimeError("SemanticService not initialised; call init_service() first")
    return _service


def reset_service() -> None:
    """Clear the global SemanticService (for tests)."""
    global _service  # noqa: PLW0603
    _service = None


def get_user_id(x_user_id: Annotated[int | None, Header()] = None) -> int | None:
    """Requesting user, as asserted by the authenticating proxy in ``X-User-Id``."""
    return x_user_id
