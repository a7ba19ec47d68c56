"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from agentcheckout.api.dependencies import get_container
from agentcheckout.container import Container

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


class ReadinessResponse(BaseModel):
    status: str
    gateway: str
    test_mode: bool
    active_sessions: int
    products: int
    session_sweeper: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(container: Annotated[Container, Depends(get_container)]) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service=container.settings.service_name,
        version=container.settings.api_version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(container: Annotated[Container, Depends(get_container)]) -> ReadinessResponse:
    """Check if service is ready to accept requests."""
    return ReadinessResponse(
        status="ready",
        gateway=container.gateway.name,
        test_mode=container.gateway.test_mode,
        active_sessions=container.store.count(),
        products=len(container.catalog),
        session_sweeper=container.store.sweeping,
    )
