"""Health check endpoint."""
from __future__ import annotations

from fastapi import APIRouter

from adpilot.config import settings
from adpilot.models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health_check() -> HealthResponse:
    """Basic health check."""
    return HealthResponse(status="ok", service=settings.app_name, version=settings.app_version)
