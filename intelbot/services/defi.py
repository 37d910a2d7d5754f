"""DeFi protocol monitoring (Uniswap subgraph plus Aave/Compound summaries)."""

from __future__ import annotations

import logging
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.errors import AppError, ValidationAppError
from intelbot.services.base import HEALTHY, IntegrationService, utc_now_iso

logger = logging.getLogger(__name__)

UNISWAP_QUERY = """
{
  protocol(id: "1") {
    totalValueLockedUSD
    totalVolumeUSD
  }
  pools(first: 10, orderBy: totalValueLockedUSD, orderDirection: desc) {
    id
    token0 { symbol }
    token1 { symbol }
    totalValueLockedUSD
    volumeUSD
  }
}
"""

PROTOCOLS = ("uniswap", "aave", "compound")


class DeFiMonitoringService(IntegrationService):
    name = "defi_monitoring"

    def __init__(self, uniswap: RateLimitedClient, *, protocol_ttl_seconds: float = 300.0) -> None:
        self._uniswap = uniswap
        self._ttl = protocol_ttl_seconds

    def clients(self) -> list[RateLimitedClient]:
        return [self._uniswap]

    async def health_check(self) -> dict[str, Any]:
        protocols = []
        for protocol in PROTOCOLS:
            try:
                await self.get_protocol_data(protocol)
                protocols.append({"protocol": protocol, "status": HEALTHY})
            except AppError as exc:
                protocols.append({"protocol": protocol, "status": "error", "error": exc.message})
        return {"status": HEALTHY, "protocols": protocols, "monitored_protocols": len(PROTOCOLS)}

    async def get_protocol_data(self, protocol: str) -> dict[str, Any]:
        if protocol == "uniswap":
            return await self.get_uniswap_data()
        if protocol == "aave":
            # TODO: wire the Aave data API once a stable public endpoint is chosen
            return {"total_value_locked": 0, "total_borrowed": 0, "reserves": []}
        if protocol == "compound":
            return {"total_value_locked": 0, "total_borrowed": 0, "markets": []}
        raise ValidationAppError(code="unknown_protocol", message=f"Unknown protocol: {protocol}")

    async def get_uniswap_data(self) -> dict[str, Any]:
        body = await self._uniswap.cached_post(self._uniswap.base_url, {"query": UNISWAP_QUERY}, max_age=self._ttl)
        return (body or {}).get("data") or {}

    async def update_all_protocols(self) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        for protocol in PROTOCOLS:
            try:
                updates[protocol] = await self.get_protocol_data(protocol)
            except AppError as exc:
                logger.error("defi.protocol_update_failed", extra={"protocol": protocol, "error": exc.message})
                updates[protocol] = {"error": exc.message}

        logger.info(
            "defi.protocols_updated",
            extra={"protocols_updated": len(updates), "timestamp": utc_now_iso()},
        )
        return updates
