"""Connection-scoped endpoints: auto-map and catalog browsing."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from factlens.api.deps import get_service, get_user_id
from factlens.api.schemas import AutoMapResponse, ColumnListResponse, TableListResponse
from factlens.service.semantic_service import SemanticService

router = APIRouter()

ServiceDep = Annotated[SemanticService, Depends(get_service)]
UserDep = Annotated[int | None, Depends(get_user_id)]


@router.post("/{connection_id}/auto-map", response_model=AutoMapResponse)
def auto_map(connection_id: int, service: ServiceDep, user_id: UserDep) -> AutoMapResponse:
    """Infer and persist mappings for every unmapped (fact, dimension) pair."""
    result = service.auto_map(connection_id, user_id)
    return AutoMapResponse(
        created=result.created, skipped=result.skipped, failures=result.failures
    )


@router.get("/{connection_id}/tables", response_model=TableListResponse)
def list_tables(connection_id: int, service: ServiceDep, user_id: UserDep) -> TableListResponse:
    return TableListResponse(tables=service.list_tables(connection_id, user_id))


@router.get("/{connection_id}/tables/{table}/columns", response_model=ColumnListResponse)
def describe_table(
    connection_id: int, table: str, service: ServiceDep, user_id: UserDep
) -> ColumnListResponse:
    return ColumnListResponse(
        table=table, columns=service.describe_table(connection_id, table, user_id)
    )
