"""Dialect listing endpoint: GET /dialects."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from factlens.api.schemas import DialectInfo, DialectListResponse
from factlens.dialect.registry import DialectRegistry

router = APIRouter()


@router.get("", response_model=DialectListResponse)
async def list_dialects() -> DialectListResponse:
    """List the supported SQL dialects and their capabilities."""
    return DialectListResponse(
        dialects=[
            DialectInfo(name=name, capabilities=asdict(DialectRegistry.get(name).capabilities))
            for name in DialectRegistry.available()
        ]
    )
