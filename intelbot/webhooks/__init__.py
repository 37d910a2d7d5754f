"""Inbound GitHub webhook authentication and routing."""

from intelbot.webhooks.dispatcher import DispatchOutcome, WebhookDispatcher
from intelbot.webhooks.events import BotCommand, EventType, WebhookEvent
from intelbot.webhooks.handlers import EventHandlers

__all__ = [
    "BotCommand",
    "DispatchOutcome",
    "EventHandlers",
    "EventType",
    "WebhookDispatcher",
    "WebhookEvent",
]
