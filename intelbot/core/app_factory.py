"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the lifespan that builds the service container, starts the task runner and
closes outbound clients on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from intelbot.api.routes import health_router, status_router, triggers_router, webhooks_router
from intelbot.core.config import Settings, settings as default_settings
from intelbot.core.errors import ConfigurationAppError
from intelbot.core.exception_handlers import setup_exception_handlers
from intelbot.core.logging import configure_logging
from intelbot.core.middleware import request_id_middleware
from intelbot.core.openapi import apply_openapi_customizations
from intelbot.services.container import build_services
from intelbot.services.scheduler import TaskRunner

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


def validate_settings(app_settings: Settings) -> None:
    """Fail fast when production lacks the GitHub App identity.

    Raises:
        ConfigurationAppError: ``APP_ENV=production`` without app id or webhook secret.
    """

    if app_settings.app_env != "production":
        return

    missing = [
        name
        for name, value in (
            ("GITHUB_APP_ID", app_settings.github.app_id),
            ("GITHUB_WEBHOOK_SECRET", app_settings.github.webhook_secret),
        )
        if not value
    ]
    if missing:
        raise ConfigurationAppError(
            code="missing_required_config",
            message=f"Missing required configuration: {', '.join(missing)}",
            details={"hint": "Set the variables in the environment or .env.production"},
        )


def create_app(
    app_settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    runner: TaskRunner | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the process-wide instance.
        transport: Optional httpx transport for every outbound client (tests).
        runner: Optional pre-built task runner (tests).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)
    validate_settings(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = build_services(cfg, transport=transport, runner=runner)
        app.state.services = services
        if cfg.app.warm_up_on_startup:
            await services.health.warm_up()
        if cfg.scheduler.enabled:
            services.runner.start()
        logger.info(
            "app.started",
            extra={"app_env": cfg.app_env, "scheduler_enabled": cfg.scheduler.enabled},
        )
        try:
            yield
        finally:
            services.runner.stop()
            await services.runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
            await services.aclose()
            app.state.services = None
            logger.info("app.stopped")

    app = FastAPI(
        title="Crypto Intel Bot",
        description=(
            "GitHub App that reacts to repository events and cron schedules by "
            "pulling market, on-chain, gas and DeFi data from rate-limited, "
            "cached upstream APIs, and reports aggregated integration health."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.services = None

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(webhooks_router)
    app.include_router(triggers_router)
    app.include_router(status_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
