from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from intelbot.api.deps import get_services
from intelbot.schemas.status import HealthStatusResponse, TaskStatusResponse
from intelbot.services.container import ServiceContainer

router = APIRouter(prefix="/api", tags=["Status"])


@router.get("/status", response_model=HealthStatusResponse)
async def service_status(services: Annotated[ServiceContainer, Depends(get_services)]) -> HealthStatusResponse:
    """Probe every integration now (never cached)."""

    return HealthStatusResponse(**await services.health.overall_status())


@router.get("/tasks", response_model=TaskStatusResponse)
async def task_status(services: Annotated[ServiceContainer, Depends(get_services)]) -> TaskStatusResponse:
    return TaskStatusResponse(**services.runner.get_task_status())
