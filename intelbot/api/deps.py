from __future__ import annotations

from fastapi import Request

from intelbot.core.errors import ConfigurationAppError
from intelbot.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Return the container built at lifespan startup."""

    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationAppError(
            code="services_not_started",
            message="Application services are not initialized",
        )
    return services
