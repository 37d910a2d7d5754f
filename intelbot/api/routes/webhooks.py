from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from intelbot.api.deps import get_services
from intelbot.schemas.status import WebhookResponse
from intelbot.services.container import ServiceContainer
from intelbot.webhooks import DispatchOutcome

router = APIRouter(tags=["Webhooks"])

MESSAGES = {
    DispatchOutcome.PROCESSED: "Webhook processed successfully",
    DispatchOutcome.IGNORED: "Event acknowledged but not processed",
}


@router.post("/webhooks/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    services: Annotated[ServiceContainer, Depends(get_services)],
    x_hub_signature_256: Annotated[str | None, Header(alias="X-Hub-Signature-256")] = None,
    x_github_event: Annotated[str | None, Header(alias="X-GitHub-Event")] = None,
    x_github_delivery: Annotated[str | None, Header(alias="X-GitHub-Delivery")] = None,
) -> WebhookResponse:
    """Receive a GitHub App delivery.

    The signature is checked over the raw request bytes before the body is
    decoded. 401 on a bad signature, 500 when the event handler fails.
    """

    raw_body = await request.body()
    outcome = await services.dispatcher.handle(
        raw_body,
        x_hub_signature_256,
        x_github_event,
        delivery_id=x_github_delivery,
    )
    return WebhookResponse(message=MESSAGES[outcome], outcome=outcome.value)
