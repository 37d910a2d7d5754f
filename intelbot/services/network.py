"""Contract deployment monitoring across EVM networks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.adapters.upstream.explorer import ExplorerClient
from intelbot.adapters.upstream.rpc import JsonRpcClient, hex_to_int
from intelbot.core.errors import ConfigurationAppError, UpstreamAppError
from intelbot.services.base import ERROR, HEALTHY, UNAVAILABLE, IntegrationService, utc_now_iso

logger = logging.getLogger(__name__)

HIGH_DEPLOYMENT_ACTIVITY = 20
RELEVANT_DEPLOYMENT_LIMIT = 5
ACTIVITY_LOOKBACK_BLOCKS = 1000
ACTIVITY_EVENT_LIMIT = 10


def analyze_deployment_trends(scan_results: list[dict[str, Any]]) -> dict[str, Any]:
    analysis: dict[str, Any] = {
        "total_deployments": 0,
        "active_networks": [],
        "deployments_by_network": {},
        "alerts": [],
        "summary": {"average_gas_used": 0.0, "most_active_network": None},
    }

    gas_used: list[int] = []
    for result in scan_results:
        if result.get("error") or result.get("deployments") is None:
            continue

        network = result["network"]
        count = len(result["deployments"])
        analysis["total_deployments"] += count
        analysis["deployments_by_network"][network] = count
        if not count:
            continue

        analysis["active_networks"].append(network)
        gas_used.extend(d["gas_used"] for d in result["deployments"] if d.get("gas_used") is not None)

        if count > HIGH_DEPLOYMENT_ACTIVITY:
            analysis["alerts"].append(
                {
                    "type": "high_deployment_activity",
                    "network": network,
                    "message": f"High deployment activity on {network}: {count} contracts deployed",
                    "severity": "high" if count > 50 else "medium",
                }
            )

    if gas_used:
        analysis["summary"]["average_gas_used"] = sum(gas_used) / len(gas_used)
    by_network = analysis["deployments_by_network"]
    if by_network:
        analysis["summary"]["most_active_network"] = max(by_network, key=by_network.get)
    return analysis


class NetworkMonitoringService(IntegrationService):
    name = "network_monitoring"

    def __init__(
        self,
        rpc_clients: Mapping[str, JsonRpcClient],
        *,
        explorers: Mapping[str, ExplorerClient] | None = None,
        blocks_per_scan: int = 1,
    ) -> None:
        self._rpc = dict(rpc_clients)
        self._explorers = dict(explorers or {})
        self._blocks_per_scan = blocks_per_scan
        self.monitored_repositories: set[str] = set()

    def _provider(self, network: str) -> JsonRpcClient:
        rpc = self._rpc.get(network)
        if rpc is None:
            raise ConfigurationAppError(
                code="rpc_not_configured",
                message=f"Provider not available for network: {network}",
                details={"service": self.name},
            )
        return rpc

    def clients(self) -> list[RateLimitedClient]:
        # RPC clients are shared with gas estimation and closed by the container
        return [explorer.http for explorer in self._explorers.values()]

    def _explorer_status(self) -> dict[str, str]:
        return {
            network: "configured" if explorer.configured else UNAVAILABLE
            for network, explorer in self._explorers.items()
        }

    async def health_check(self) -> dict[str, Any]:
        if not self._rpc:
            return {
                "status": UNAVAILABLE,
                "error": "No RPC endpoints configured",
                "monitored_repos": len(self.monitored_repositories),
                "explorers": self._explorer_status(),
            }

        async def probe(network: str, rpc: JsonRpcClient) -> tuple[str, dict[str, Any]]:
            try:
                block_number = await rpc.block_number()
                chain_id = await rpc.chain_id()
            except UpstreamAppError as exc:
                return network, {"status": ERROR, "error": exc.message}
            return network, {"status": HEALTHY, "block_number": block_number, "chain_id": chain_id}

        networks = dict(await asyncio.gather(*(probe(n, rpc) for n, rpc in self._rpc.items())))
        healthy = sum(1 for entry in networks.values() if entry["status"] == HEALTHY)
        return {
            "status": HEALTHY if healthy else ERROR,
            "networks": networks,
            "monitored_repos": len(self.monitored_repositories),
            "healthy_networks": healthy,
            "explorers": self._explorer_status(),
        }

    async def scan_contract_deployments(self, network: str) -> dict[str, Any]:
        """Scan the most recent block(s) for contract-creation transactions."""

        rpc = self._provider(network)
        end_block = await rpc.block_number()
        start_block = max(0, end_block - self._blocks_per_scan + 1)

        deployments = []
        for number in range(start_block, end_block + 1):
            try:
                block = await rpc.get_block(hex(number), full_transactions=True)
            except UpstreamAppError as exc:
                logger.warning(
                    "network.block_scan_failed",
                    extra={"network": network, "block": number, "error": exc.message},
                )
                continue

            for tx in (block or {}).get("transactions", []):
                if isinstance(tx, dict) and tx.get("to") is None:
                    deployment = await self._analyze_deployment(rpc, tx, network)
                    if deployment:
                        deployments.append(deployment)

        logger.info(
            "network.deployments_scanned",
            extra={
                "network": network,
                "blocks_scanned": end_block - start_block + 1,
                "deployments_found": len(deployments),
            },
        )
        return {
            "network": network,
            "from_block": start_block,
            "to_block": end_block,
            "deployments": deployments,
            "timestamp": utc_now_iso(),
        }

    async def _analyze_deployment(self, rpc: JsonRpcClient, tx: dict[str, Any], network: str) -> dict[str, Any] | None:
        try:
            receipt = await rpc.call("eth_getTransactionReceipt", [tx["hash"]])
        except UpstreamAppError as exc:
            logger.warning("network.receipt_failed", extra={"network": network, "error": exc.message})
            return None
        if not receipt or not receipt.get("contractAddress"):
            return None

        gas_used = hex_to_int(receipt.get("gasUsed"))
        gas_price = hex_to_int(tx.get("gasPrice"))
        deployment = {
            "transaction_hash": tx["hash"],
            "contract_address": receipt["contractAddress"],
            "deployer": tx.get("from"),
            "block_number": hex_to_int(receipt.get("blockNumber")),
            "gas_used": gas_used,
            "gas_price": gas_price,
            "deployment_cost_wei": gas_used * gas_price if gas_used is not None and gas_price is not None else None,
            "network": network,
        }

        source = await self._contract_source(receipt["contractAddress"], network)
        if source:
            deployment["source_code"] = source
        return deployment

    async def _contract_source(self, address: str, network: str) -> dict[str, Any] | None:
        explorer = self._explorers.get(network)
        if explorer is None:
            return None
        try:
            return await explorer.get_contract_source(address)
        except UpstreamAppError as exc:
            logger.warning(
                "network.source_lookup_failed",
                extra={"network": network, "contract_address": address, "error": exc.message},
            )
            return None

    async def scan_all_networks(self) -> dict[str, Any]:
        async def one(network: str) -> dict[str, Any]:
            try:
                return await self.scan_contract_deployments(network)
            except UpstreamAppError as exc:
                logger.error("network.scan_failed", extra={"network": network, "error": exc.message})
                return {"network": network, "error": exc.message, "timestamp": utc_now_iso()}

        scan_results = list(await asyncio.gather(*(one(network) for network in self._rpc)))
        analysis = analyze_deployment_trends(scan_results)
        logger.info(
            "network.scan_completed",
            extra={
                "networks_scanned": len(scan_results),
                "total_deployments": analysis["total_deployments"],
                "active_networks": len(analysis["active_networks"]),
            },
        )
        return {"scan_results": scan_results, "analysis": analysis, "timestamp": utc_now_iso()}

    async def get_network_status(self, network: str) -> dict[str, Any]:
        rpc = self._provider(network)
        block_number = await rpc.block_number()
        chain_id = await rpc.chain_id()
        gas_price = await rpc.call("eth_gasPrice")
        return {
            "network": network,
            "block_number": block_number,
            "chain_id": chain_id,
            "gas_price_wei": hex_to_int(gas_price),
            "timestamp": utc_now_iso(),
        }

    async def track_contract_activity(self, contract_address: str, network: str) -> dict[str, Any]:
        """Collect log events emitted by a contract over the recent block window."""

        rpc = self._provider(network)
        latest = await rpc.block_number()
        from_block = max(0, latest - ACTIVITY_LOOKBACK_BLOCKS)
        logs = await rpc.call(
            "eth_getLogs",
            [{"address": contract_address, "fromBlock": hex(from_block), "toBlock": "latest"}],
        )
        logs = logs or []

        logger.info(
            "network.contract_activity_tracked",
            extra={"network": network, "contract_address": contract_address, "event_count": len(logs)},
        )
        return {
            "contract_address": contract_address,
            "network": network,
            "from_block": from_block,
            "to_block": latest,
            "event_count": len(logs),
            "events": logs[:ACTIVITY_EVENT_LIMIT],
            "timestamp": utc_now_iso(),
        }

    async def initialize_repository(self, owner: str, repo: str) -> dict[str, Any]:
        repo_key = f"{owner}/{repo}"
        self.monitored_repositories.add(repo_key)
        logger.info(
            "github.repository_monitoring_initialized",
            extra={"owner": owner, "repo": repo, "monitoring_type": "network_deployments"},
        )
        return {
            "repository": repo_key,
            "initialized": True,
            "timestamp": utc_now_iso(),
            "monitoring": ["contract_deployments", "transaction_activity", "gas_usage_trends"],
        }

    async def update_deployments(self, owner: str, repo: str) -> dict[str, Any]:
        """Rescan networks and attach recent deployments to the repository.

        Matching deployments to repository artifacts is heuristic: the most
        recent deployments are reported as potentially relevant.
        """

        scan = await self.scan_all_networks()
        relevant = [
            deployment
            for result in scan["scan_results"]
            for deployment in result.get("deployments") or []
        ][:RELEVANT_DEPLOYMENT_LIMIT]

        logger.info(
            "github.deployments_updated",
            extra={
                "owner": owner,
                "repo": repo,
                "deployments_found": len(relevant),
                "networks_scanned": len(scan["scan_results"]),
            },
        )
        return {
            "repository": f"{owner}/{repo}",
            "scan_results": scan,
            "relevant_deployments": relevant,
            "timestamp": utc_now_iso(),
        }
