"""Report endpoints: run, drill-through, and drill configuration."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from factlens.api.deps import get_service, get_user_id
from factlens.api.routers.queries import to_response
from factlens.api.schemas import DrillConfigResponse, DrillTargetResponse, QueryResultResponse
from factlens.models.query import DrillRequest
from factlens.service.semantic_service import SemanticService

router = APIRouter()

ServiceDep = Annotated[SemanticService, Depends(get_service)]
UserDep = Annotated[int | None, Depends(get_user_id)]


@router.get("/{report_id}/run", response_model=QueryResultResponse)
def run_report(
    report_id: int, request: Request, service: ServiceDep, user_id: UserDep
) -> QueryResultResponse:
    """Run a saved report; every query parameter is a runtime equality filter.

    A parameter given more than once filters with ``IN``.
    """
    runtime: dict[str, object] = {}
    for key in request.query_params:
        values = request.query_params.getlist(key)
        runtime[key] = values if len(values) > 1 else values[0]
    return to_response(service.run_report(report_id, runtime, user_id))


@router.post("/{report_id}/drill", response_model=QueryResultResponse)
def drill_through(
    report_id: int, body: DrillRequest, service: ServiceDep, user_id: UserDep
) -> QueryResultResponse:
    """Run a drill target of the report, filtered by a clicked row."""
    return to_response(
        service.drill_through(report_id, body.target_report_id, body.row, user_id)
    )


@router.get("/{report_id}/drill-config", response_model=DrillConfigResponse)
def get_drill_config(
    report_id: int, service: ServiceDep, user_id: UserDep
) -> DrillConfigResponse:
    targets = service.get_drill_config(report_id, user_id)
    return DrillConfigResponse(
        report_id=report_id,
        targets=[
            DrillTargetResponse(
                target_report_id=t.target_report_id, label=t.label, mapping=t.mapping
            )
            for t in targets
        ],
    )
