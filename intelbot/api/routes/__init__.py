from __future__ import annotations

from intelbot.api.routes.health import router as health_router
from intelbot.api.routes.status import router as status_router
from intelbot.api.routes.triggers import router as triggers_router
from intelbot.api.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "status_router", "triggers_router", "webhooks_router"]
