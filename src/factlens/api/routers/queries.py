"""Semantic query endpoints: POST /queries/facts and POST /queries/kpi.

Handlers are plain ``def`` so FastAPI runs the blocking database work in
its threadpool.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends

from factlens.api.deps import get_service, get_user_id
from factlens.api.schemas import (
    FactQueryBody,
    KpiQueryBody,
    QueryResultResponse,
    ResolvedInfoResponse,
)
from factlens.service.semantic_service import QueryResult, SemanticService

router = APIRouter()

ServiceDep = Annotated[SemanticService, Depends(get_service)]
UserDep = Annotated[int | None, Depends(get_user_id)]


def to_response(result: QueryResult) -> QueryResultResponse:
    return QueryResultResponse(
        sql=result.sql,
        dialect=result.dialect,
        rows=result.rows,
        params=result.params,
        resolved=ResolvedInfoResponse(**asdict(result.resolved)),
        warnings=result.warnings,
        sql_valid=result.sql_valid,
    )


@router.post("/facts", response_model=QueryResultResponse)
def run_fact_query(
    body: FactQueryBody, service: ServiceDep, user_id: UserDep
) -> QueryResultResponse:
    """Aggregate facts, grouped by the requested dimensions."""
    return to_response(service.run_fact_query(body.connection_id, body, user_id))


@router.post("/kpi", response_model=QueryResultResponse)
def run_kpi_query(
    body: KpiQueryBody, service: ServiceDep, user_id: UserDep
) -> QueryResultResponse:
    """Evaluate a KPI expression, grouped by the requested dimensions."""
    return to_response(service.run_kpi_query(body.connection_id, body, user_id))
