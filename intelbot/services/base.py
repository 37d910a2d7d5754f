"""Shared contract for integration services."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.logging import elapsed_ms

HEALTHY = "healthy"
ERROR = "error"
UNAVAILABLE = "unavailable"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class IntegrationService(ABC):
    """Interface for services the health aggregator and tasks can drive.

    Subclasses own one or more ``RateLimitedClient`` instances and never share
    them with other services.
    """

    name: str = "integration"

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Probe the upstream and return ``{"status": ..., **detail}``.

        Implementations may raise; the aggregator turns exceptions into an
        ``error`` entry.
        """
        ...

    def clients(self) -> list[RateLimitedClient]:
        return []

    async def aclose(self) -> None:
        for client in self.clients():
            await client.aclose()


async def timed_probe(client: RateLimitedClient, endpoint: str, **extra: Any) -> dict[str, Any]:
    """Hit ``endpoint`` once (uncached) and report response time."""

    started = time.perf_counter()
    await client.request(endpoint)
    return {"status": HEALTHY, "response_time_ms": elapsed_ms(started), **extra}
