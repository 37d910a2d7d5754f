"""Explicit wiring of every long-lived component.

One ``ServiceContainer`` is built per application (inside the event loop, at
lifespan startup) and handed to routes, the task runner and the webhook
dispatcher. Nothing in the package constructs integrations at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from intelbot.adapters.github import GitHubAppClient
from intelbot.adapters.upstream import RateLimitedClient
from intelbot.adapters.upstream.explorer import ExplorerClient
from intelbot.adapters.upstream.rpc import JsonRpcClient
from intelbot.core.config import MonitoringSettings, Settings
from intelbot.services.arkham import ArkhamIntelService
from intelbot.services.base import IntegrationService
from intelbot.services.coindesk import CoinDeskService
from intelbot.services.coingecko import CoinGeckoService
from intelbot.services.defi import DeFiMonitoringService
from intelbot.services.gas import GasEstimationService
from intelbot.services.health import HealthAggregator
from intelbot.services.network import NetworkMonitoringService
from intelbot.services.scheduler import TaskRunner, register_default_tasks
from intelbot.utils.ttl_cache import TTLCache
from intelbot.webhooks import EventHandlers, WebhookDispatcher

logger = logging.getLogger(__name__)

# Slower-moving integrations keep a smaller cache
SMALL_CACHE_MAX_ENTRIES = 50
SMALL_CACHE_TRIM_COUNT = 10


@dataclass
class ServiceContainer:
    coingecko: CoinGeckoService
    coindesk: CoinDeskService
    arkham: ArkhamIntelService
    gas: GasEstimationService
    network: NetworkMonitoringService
    defi: DeFiMonitoringService
    github: GitHubAppClient
    health: HealthAggregator
    runner: TaskRunner
    dispatcher: WebhookDispatcher
    rpc_clients: dict[str, JsonRpcClient] = field(default_factory=dict)

    def integrations(self) -> dict[str, IntegrationService]:
        return {
            "coingecko": self.coingecko,
            "coindesk": self.coindesk,
            "arkham_intel": self.arkham,
            "gas_estimation": self.gas,
            "network_monitoring": self.network,
            "defi_monitoring": self.defi,
        }

    async def aclose(self) -> None:
        for service in (self.coingecko, self.coindesk, self.arkham, self.network, self.defi):
            await service.aclose()
        # RPC clients are shared by gas and network monitoring
        for rpc in self.rpc_clients.values():
            await rpc.http.aclose()
        await self.github.aclose()
        logger.info("services.closed")


def _cache(name: str, monitoring: MonitoringSettings, *, small: bool = False) -> TTLCache:
    if small:
        return TTLCache(name=name, max_entries=SMALL_CACHE_MAX_ENTRIES, trim_count=SMALL_CACHE_TRIM_COUNT)
    return TTLCache(name=name, max_entries=monitoring.cache_max_entries, trim_count=monitoring.cache_trim_count)


def build_services(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    runner: TaskRunner | None = None,
) -> ServiceContainer:
    """Construct clients, integrations, the runner and the dispatcher.

    Must be called from inside a running event loop's lifetime (the httpx
    clients and pacer locks bind to it on first use).

    Args:
        settings: Application settings.
        transport: Optional httpx transport shared by every client (tests).
        runner: Pre-built task runner (tests inject fake clocks).
    """

    monitoring = settings.monitoring

    cg = settings.coingecko
    coingecko_client = RateLimitedClient(
        "coingecko",
        cg.pro_base_url if cg.api_key else cg.base_url,
        min_interval_seconds=cg.pro_min_interval_seconds if cg.api_key else cg.min_interval_seconds,
        timeout_seconds=cg.timeout_seconds,
        headers={"x-cg-pro-api-key": cg.api_key} if cg.api_key else None,
        cache=_cache("coingecko", monitoring),
        transport=transport,
    )

    cd = settings.coindesk
    coindesk_client = RateLimitedClient(
        "coindesk",
        cd.base_url,
        min_interval_seconds=cd.min_interval_seconds,
        timeout_seconds=cd.timeout_seconds,
        cache=_cache("coindesk", monitoring, small=True),
        transport=transport,
    )

    ak = settings.arkham
    arkham_client = RateLimitedClient(
        "arkham_intel",
        ak.base_url,
        min_interval_seconds=ak.min_interval_seconds,
        timeout_seconds=ak.timeout_seconds,
        headers={"Authorization": f"Bearer {ak.api_key}"} if ak.api_key else None,
        cache=_cache("arkham_intel", monitoring),
        transport=transport,
    )

    chain = settings.blockchain
    rpc_clients = {
        network: JsonRpcClient(
            network,
            RateLimitedClient(
                f"rpc:{network}",
                url,
                min_interval_seconds=chain.rpc_min_interval_seconds,
                timeout_seconds=chain.rpc_timeout_seconds,
                cache=_cache(f"rpc:{network}", monitoring, small=True),
                transport=transport,
            ),
        )
        for network, url in chain.rpc_urls().items()
    }

    explorer_settings = settings.explorer
    explorers = {
        network: ExplorerClient(
            network,
            RateLimitedClient(
                f"explorer:{network}",
                url,
                min_interval_seconds=explorer_settings.explorer_min_interval_seconds,
                timeout_seconds=explorer_settings.explorer_timeout_seconds,
                cache=_cache(f"explorer:{network}", monitoring, small=True),
                transport=transport,
            ),
            api_key,
            source_ttl_seconds=explorer_settings.explorer_source_ttl_seconds,
        )
        for network, (url, api_key) in explorer_settings.endpoints().items()
    }

    defi_settings = settings.defi
    uniswap_client = RateLimitedClient(
        "uniswap",
        defi_settings.uniswap_subgraph_url,
        min_interval_seconds=defi_settings.min_interval_seconds,
        timeout_seconds=defi_settings.timeout_seconds,
        cache=_cache("uniswap", monitoring, small=True),
        transport=transport,
    )

    gh = settings.github
    github_client = RateLimitedClient(
        "github",
        gh.api_url,
        min_interval_seconds=gh.min_interval_seconds,
        timeout_seconds=gh.timeout_seconds,
        transport=transport,
    )

    coingecko = CoinGeckoService(
        coingecko_client,
        cg,
        alert_threshold_percent=monitoring.price_change_threshold_percent,
    )
    coindesk = CoinDeskService(coindesk_client, cd)
    arkham = ArkhamIntelService(arkham_client, ak)
    gas = GasEstimationService(
        rpc_clients,
        threshold_gwei=monitoring.gas_price_threshold_gwei,
        gas_price_ttl_seconds=chain.gas_price_ttl_seconds,
    )
    network = NetworkMonitoringService(rpc_clients, explorers=explorers)
    defi = DeFiMonitoringService(uniswap_client, protocol_ttl_seconds=defi_settings.protocol_ttl_seconds)
    github = GitHubAppClient(gh, github_client)

    health = HealthAggregator(
        {
            "coingecko": coingecko,
            "coindesk": coindesk,
            "arkham_intel": arkham,
            "gas_estimation": gas,
            "network_monitoring": network,
            "defi_monitoring": defi,
        }
    )

    handlers = EventHandlers(
        gas=gas,
        network=network,
        health=health,
        github=github,
        bot_mention=gh.bot_mention,
    )
    dispatcher = WebhookDispatcher(gh.webhook_secret, handlers)

    container = ServiceContainer(
        coingecko=coingecko,
        coindesk=coindesk,
        arkham=arkham,
        gas=gas,
        network=network,
        defi=defi,
        github=github,
        health=health,
        runner=runner or TaskRunner(),
        dispatcher=dispatcher,
        rpc_clients=rpc_clients,
    )
    register_default_tasks(container.runner, container, settings)

    logger.info(
        "services.built",
        extra={
            "integrations": list(container.integrations()),
            "rpc_networks": list(rpc_clients),
            "explorers_configured": [n for n, e in explorers.items() if e.configured],
            "github_app_configured": github.configured,
        },
    )
    return container
