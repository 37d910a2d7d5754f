"""Gas price monitoring and estimation across EVM networks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from intelbot.adapters.upstream.rpc import JsonRpcClient, hex_to_int, wei_to_gwei
from intelbot.core.errors import ConfigurationAppError, UpstreamAppError
from intelbot.services.base import ERROR, HEALTHY, UNAVAILABLE, IntegrationService, utc_now_iso

logger = logging.getLogger(__name__)

# Well-known ERC-20 style selectors probed by analyze_contract_gas
COMMON_FUNCTIONS = (
    ("transfer", "0xa9059cbb"),
    ("approve", "0x095ea7b3"),
    ("transferFrom", "0x23b872dd"),
    ("mint", "0x40c10f19"),
    ("burn", "0x42966c68"),
)

REPOSITORY_RECOMMENDATIONS = [
    "Use memory instead of storage where possible",
    "Optimize loop operations",
    "Consider using packed structs",
    "Implement efficient data structures",
]


def analyze_gas_trends(gas_prices: list[dict[str, Any]], *, threshold_gwei: float) -> dict[str, Any]:
    """Flag networks above ``threshold_gwei`` and summarize the spread."""

    analysis: dict[str, Any] = {
        "high_gas_networks": [],
        "alerts": [],
        "summary": {
            "average_gas_price": 0.0,
            "highest_gas_network": None,
            "lowest_gas_network": None,
        },
    }

    valid = [gp for gp in gas_prices if gp.get("gas_price") is not None and not gp.get("error")]
    if not valid:
        return analysis

    for entry in valid:
        price = float(entry["gas_price"])
        if price > threshold_gwei:
            severity = "high" if price > threshold_gwei * 2 else "medium"
            analysis["high_gas_networks"].append(
                {"network": entry["network"], "gas_price": price, "severity": severity}
            )
            analysis["alerts"].append(
                {
                    "type": "high_gas_price",
                    "network": entry["network"],
                    "message": f"High gas price detected on {entry['network']}: {price:.2f} gwei",
                    "severity": severity,
                }
            )

    prices = [float(entry["gas_price"]) for entry in valid]
    analysis["summary"]["average_gas_price"] = sum(prices) / len(prices)
    analysis["summary"]["highest_gas_network"] = max(valid, key=lambda e: float(e["gas_price"]))["network"]
    analysis["summary"]["lowest_gas_network"] = min(valid, key=lambda e: float(e["gas_price"]))["network"]
    return analysis


class GasEstimationService(IntegrationService):
    name = "gas_estimation"

    def __init__(
        self,
        rpc_clients: Mapping[str, JsonRpcClient],
        *,
        threshold_gwei: float = 50.0,
        gas_price_ttl_seconds: float = 30.0,
    ) -> None:
        self._rpc = dict(rpc_clients)
        self._threshold = threshold_gwei
        self._ttl = gas_price_ttl_seconds

    @property
    def networks(self) -> list[str]:
        return list(self._rpc)

    def _provider(self, network: str) -> JsonRpcClient:
        rpc = self._rpc.get(network)
        if rpc is None:
            raise ConfigurationAppError(
                code="rpc_not_configured",
                message=f"Provider not available for network: {network}",
                details={"service": self.name, "hint": f"Set {network.upper()}_RPC_URL"},
            )
        return rpc

    async def health_check(self) -> dict[str, Any]:
        if not self._rpc:
            return {"status": UNAVAILABLE, "error": "No RPC endpoints configured"}

        async def probe(network: str, rpc: JsonRpcClient) -> tuple[str, dict[str, Any]]:
            try:
                return network, {"status": HEALTHY, "block_number": await rpc.block_number()}
            except UpstreamAppError as exc:
                return network, {"status": ERROR, "error": exc.message}

        results = dict(await asyncio.gather(*(probe(n, rpc) for n, rpc in self._rpc.items())))
        healthy = sum(1 for entry in results.values() if entry["status"] == HEALTHY)
        return {
            "status": HEALTHY if healthy else ERROR,
            "networks": results,
            "provider_count": len(self._rpc),
            "healthy_networks": healthy,
        }

    async def get_gas_price(self, network: str = "ethereum") -> dict[str, Any]:
        rpc = self._provider(network)
        gas_price = await rpc.call("eth_gasPrice", max_age=self._ttl)

        try:
            priority_fee = await rpc.call("eth_maxPriorityFeePerGas", max_age=self._ttl)
        except UpstreamAppError:
            # Pre-London chains do not expose priority fees
            priority_fee = None

        base_fee = None
        try:
            block = await rpc.call("eth_getBlockByNumber", ["latest", False], max_age=self._ttl)
            base_fee = (block or {}).get("baseFeePerGas")
        except UpstreamAppError as exc:
            logger.warning("gas.base_fee_unavailable", extra={"network": network, "error": exc.message})

        max_fee = None
        if base_fee is not None and priority_fee is not None:
            max_fee = hex_to_int(base_fee) * 2 + hex_to_int(priority_fee)

        gas_data = {
            "network": network,
            "timestamp": utc_now_iso(),
            "gas_price": wei_to_gwei(gas_price),
            "max_fee_per_gas": wei_to_gwei(max_fee),
            "max_priority_fee_per_gas": wei_to_gwei(priority_fee),
            "base_fee": wei_to_gwei(base_fee),
        }
        logger.info(
            "gas.price_updated",
            extra={"network": network, "gas_price_gwei": gas_data["gas_price"]},
        )
        return gas_data

    async def get_all_network_gas_prices(self) -> list[dict[str, Any]]:
        async def one(network: str) -> dict[str, Any]:
            try:
                return await self.get_gas_price(network)
            except UpstreamAppError as exc:
                logger.error("gas.price_failed", extra={"network": network, "error": exc.message})
                return {"network": network, "error": exc.message, "timestamp": utc_now_iso()}

        return list(await asyncio.gather(*(one(network) for network in self._rpc)))

    async def estimate_transaction_cost(
        self,
        to: str,
        data: str = "0x",
        value_wei: int = 0,
        network: str = "ethereum",
    ) -> dict[str, Any]:
        rpc = self._provider(network)
        gas_limit = hex_to_int(
            await rpc.call("eth_estimateGas", [{"to": to, "data": data, "value": hex(value_wei)}])
        )
        gas = await self.get_gas_price(network)

        estimate: dict[str, Any] = {
            "network": network,
            "gas_limit": gas_limit,
            "estimated_costs": {},
            "timestamp": utc_now_iso(),
        }
        if gas["gas_price"] is not None:
            cost_gwei = gas_limit * gas["gas_price"]
            estimate["estimated_costs"]["legacy"] = {
                "gas_price": gas["gas_price"],
                "cost_gwei": cost_gwei,
                "cost_eth": cost_gwei / 1e9,
            }
        if gas["max_fee_per_gas"] is not None and gas["max_priority_fee_per_gas"] is not None:
            max_cost_gwei = gas_limit * gas["max_fee_per_gas"]
            estimate["estimated_costs"]["eip1559"] = {
                "max_fee_per_gas": gas["max_fee_per_gas"],
                "max_priority_fee_per_gas": gas["max_priority_fee_per_gas"],
                "max_cost_gwei": max_cost_gwei,
                "max_cost_eth": max_cost_gwei / 1e9,
            }
        return estimate

    async def analyze_contract_gas(self, contract_address: str, network: str = "ethereum") -> dict[str, Any]:
        rpc = self._provider(network)
        code = await rpc.call("eth_getCode", [contract_address, "latest"])
        if not code or code == "0x":
            raise UpstreamAppError(
                code="contract_not_found",
                message="No contract found at the specified address",
                details={"service": self.name, "endpoint": contract_address},
            )

        functions = []
        for name, selector in COMMON_FUNCTIONS:
            try:
                estimated = await rpc.call(
                    "eth_estimateGas",
                    [{"to": contract_address, "data": selector + "0" * 64}],
                )
            except UpstreamAppError:
                logger.debug("gas.estimate_skipped", extra={"function": name, "network": network})
                continue
            functions.append({"name": name, "signature": selector, "estimated_gas": hex_to_int(estimated)})

        logger.info(
            "gas.contract_analyzed",
            extra={"network": network, "function_count": len(functions)},
        )
        return {
            "contract_address": contract_address,
            "network": network,
            "code_size": (len(code) - 2) // 2,
            "functions": functions,
            "timestamp": utc_now_iso(),
        }

    async def update_gas_prices(self) -> dict[str, Any]:
        gas_prices = await self.get_all_network_gas_prices()
        analysis = analyze_gas_trends(gas_prices, threshold_gwei=self._threshold)
        logger.info(
            "gas.analysis_completed",
            extra={
                "networks_analyzed": len(gas_prices),
                "high_gas_networks": len(analysis["high_gas_networks"]),
                "alerts": len(analysis["alerts"]),
            },
        )
        return {"gas_prices": gas_prices, "analysis": analysis, "timestamp": utc_now_iso()}

    async def analyze_repository(self, owner: str, repo: str) -> dict[str, Any]:
        """Repository-level gas review.

        Contract compilation is out of scope, so the result carries the
        current gas snapshot and generic optimization advice.
        """

        logger.info("gas.repository_analysis_started", extra={"owner": owner, "repo": repo})
        snapshot = await self.get_all_network_gas_prices() if self._rpc else []
        return {
            "repository": f"{owner}/{repo}",
            "timestamp": utc_now_iso(),
            "gas_snapshot": snapshot,
            "recommendations": list(REPOSITORY_RECOMMENDATIONS),
        }

    async def analyze_and_update(self, owner: str, repo: str) -> dict[str, Any]:
        analysis = await self.analyze_repository(owner, repo)
        logger.info(
            "github.gas_analysis_completed",
            extra={"owner": owner, "repo": repo, "timestamp": analysis["timestamp"]},
        )
        return analysis
