"""Aggregate, always-live health across every integration."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from intelbot.services.base import ERROR, IntegrationService, utc_now_iso

logger = logging.getLogger(__name__)

OVERALL_HEALTHY = "healthy"
OVERALL_DEGRADED = "degraded"


class HealthAggregator:
    """Runs every registered probe concurrently and folds the results.

    A probe that raises becomes an ``error`` entry for that service only.
    Results are never cached.
    """

    def __init__(self, probes: Mapping[str, IntegrationService]) -> None:
        self._probes = dict(probes)

    @property
    def services(self) -> list[str]:
        return list(self._probes)

    async def _probe(self, name: str, service: IntegrationService) -> dict[str, Any]:
        try:
            result = await service.health_check()
        except Exception as exc:
            logger.warning(
                "health.probe_failed",
                extra={"service": name, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return {"status": ERROR, "error": str(exc)}
        return dict(result)

    async def overall_status(self) -> dict[str, Any]:
        names = list(self._probes)
        results = await asyncio.gather(
            *(self._probe(name, self._probes[name]) for name in names),
            return_exceptions=True,
        )

        services: dict[str, dict[str, Any]] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                # Only reachable for cancellation-style errors escaping _probe
                services[name] = {"status": ERROR, "error": str(result) or type(result).__name__}
            else:
                services[name] = result

        degraded = any(entry.get("status") == ERROR for entry in services.values())
        overall = OVERALL_DEGRADED if degraded else OVERALL_HEALTHY
        logger.info(
            "health.checked",
            extra={"overall": overall, "service_count": len(services)},
        )
        return {"overall": overall, "services": services, "timestamp": utc_now_iso()}

    async def warm_up(self) -> dict[str, Any]:
        """Check every integration once at startup and log which ones answered.

        Failures are logged per service and never abort startup.
        """

        status = await self.overall_status()
        for name, entry in status["services"].items():
            if entry.get("status") == ERROR:
                logger.error("service.initialization_failed", extra={"service": name, "error": entry.get("error")})
            else:
                logger.info("service.initialized", extra={"service": name, "status": entry.get("status")})
        logger.info("services.initialization_completed", extra={"overall": status["overall"]})
        return status
