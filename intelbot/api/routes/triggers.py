from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from intelbot.api.deps import get_services
from intelbot.core.auth import verify_api_key
from intelbot.schemas.triggers import TriggerRequest, TriggerResponse
from intelbot.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trigger", tags=["Triggers"], dependencies=[Depends(verify_api_key)])


@router.post("/gas-analysis", response_model=TriggerResponse)
async def trigger_gas_analysis(
    body: TriggerRequest,
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> TriggerResponse:
    """Run the repository gas analysis synchronously.

    Upstream and configuration failures surface through the global error
    handlers (502/504/503).
    """

    logger.info("trigger.gas_analysis", extra={"owner": body.owner, "repo": body.repo})
    result = await services.gas.analyze_and_update(body.owner, body.repo)
    return TriggerResponse(success=True, message="Gas analysis completed", result=result)


@router.post("/network-monitor", response_model=TriggerResponse)
async def trigger_network_monitor(
    body: TriggerRequest,
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> TriggerResponse:
    logger.info("trigger.network_monitor", extra={"owner": body.owner, "repo": body.repo})
    result = await services.network.update_deployments(body.owner, body.repo)
    return TriggerResponse(success=True, message="Network monitoring updated", result=result)
