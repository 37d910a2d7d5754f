"""Authenticate, decode and route inbound webhook deliveries."""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any

from intelbot.core.errors import AuthenticationAppError, HandlerAppError, ValidationAppError
from intelbot.core.logging import elapsed_ms
from intelbot.webhooks.events import EventType, WebhookEvent
from intelbot.webhooks.handlers import EventHandlers
from intelbot.webhooks.signature import verify_signature

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"


class WebhookDispatcher:
    """Signature check, then route by event type, then invoke.

    Args:
        secret: Shared webhook secret; when unset every delivery is rejected.
        handlers: Handler table for recognized event types.
    """

    def __init__(self, secret: str | None, handlers: EventHandlers) -> None:
        self._secret = secret
        self._handlers = handlers

    async def handle(
        self,
        raw_body: bytes,
        signature_header: str | None,
        event_type: str | None,
        delivery_id: str | None = None,
    ) -> DispatchOutcome:
        return await self.dispatch(
            WebhookEvent(
                type=event_type or "",
                raw_body=raw_body,
                signature_header=signature_header,
                delivery_id=delivery_id,
            )
        )

    async def dispatch(self, event: WebhookEvent) -> DispatchOutcome:
        """Handle one delivery.

        Raises:
            AuthenticationAppError: Signature or secret missing, or digest mismatch.
            ValidationAppError: Authenticated body is not a JSON object.
            HandlerAppError: The routed handler raised.
        """

        if not verify_signature(event.raw_body, event.signature_header, self._secret):
            logger.warning(
                "webhook.invalid_signature",
                extra={"event": event.type, "delivery_id": event.delivery_id},
            )
            raise AuthenticationAppError(
                code="invalid_signature",
                message="Invalid signature",
                details={"event": event.type, "delivery_id": event.delivery_id},
            )

        payload = self._decode(event)
        repository = payload.get("repository")
        logger.info(
            "webhook.received",
            extra={
                "event": event.type,
                "delivery_id": event.delivery_id,
                "action": payload.get("action"),
                "repository": repository.get("full_name") if isinstance(repository, dict) else None,
            },
        )

        kind = event.kind
        handler = self._handlers.route(kind) if kind is not EventType.UNRECOGNIZED else None
        if handler is None:
            logger.info("webhook.ignored", extra={"event": event.type, "delivery_id": event.delivery_id})
            return DispatchOutcome.IGNORED

        started = time.perf_counter()
        try:
            await handler(payload)
        except Exception as exc:
            logger.error(
                "webhook.handler_failed",
                extra={
                    "event": event.type,
                    "delivery_id": event.delivery_id,
                    "error_type": type(exc).__name__,
                    "duration_ms": elapsed_ms(started),
                },
                exc_info=True,
            )
            raise HandlerAppError(
                code="webhook_handler_failed",
                message="Internal server error",
                details={"event": event.type, "delivery_id": event.delivery_id, "error_type": type(exc).__name__},
            ) from exc

        logger.info(
            "webhook.processed",
            extra={"event": event.type, "delivery_id": event.delivery_id, "duration_ms": elapsed_ms(started)},
        )
        return DispatchOutcome.PROCESSED

    @staticmethod
    def _decode(event: WebhookEvent) -> dict[str, Any]:
        try:
            payload = json.loads(event.raw_body)
        except ValueError as exc:
            raise ValidationAppError(
                code="invalid_webhook_payload",
                message="Webhook body is not valid JSON",
                details={"event": event.type, "delivery_id": event.delivery_id},
            ) from exc
        if not isinstance(payload, dict):
            raise ValidationAppError(
                code="invalid_webhook_payload",
                message="Webhook body must be a JSON object",
                details={"event": event.type, "delivery_id": event.delivery_id},
            )
        return payload
