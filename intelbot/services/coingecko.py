"""CoinGecko market data integration."""

from __future__ import annotations

import logging
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.config import CoinGeckoSettings
from intelbot.services.base import IntegrationService, timed_probe

logger = logging.getLogger(__name__)


def analyze_market_conditions(
    top_cryptos: list[dict[str, Any]],
    *,
    alert_threshold_percent: float,
) -> dict[str, Any]:
    """Classify the market from 24h price changes of the top coins.

    Bullish when the average change is above 5% with more than 70% of coins
    up; bearish when below -5% with fewer than 30% up. A pump/dump alert is
    raised when the average move exceeds ``alert_threshold_percent``.
    """

    analysis: dict[str, Any] = {"condition": "neutral", "indicators": {}, "alerts": []}
    if not top_cryptos:
        return analysis

    changes = [
        coin["price_change_percentage_24h"]
        for coin in top_cryptos
        if coin.get("price_change_percentage_24h") is not None
    ]
    if not changes:
        return analysis

    avg_change = sum(changes) / len(changes)
    positive = sum(1 for change in changes if change > 0)
    positive_ratio = positive / len(changes)

    analysis["indicators"] = {
        "average_change_24h": avg_change,
        "positive_ratio": positive_ratio,
        "green_coins": positive,
        "total_coins": len(changes),
    }

    if avg_change > 5 and positive_ratio > 0.7:
        analysis["condition"] = "bullish"
    elif avg_change < -5 and positive_ratio < 0.3:
        analysis["condition"] = "bearish"

    if abs(avg_change) > alert_threshold_percent:
        kind = "pump" if avg_change > 0 else "dump"
        analysis["alerts"].append(
            {
                "type": kind,
                "message": f"Market wide {kind} detected: {avg_change:.2f}% average change",
                "severity": "high" if abs(avg_change) > 10 else "medium",
            }
        )

    return analysis


class CoinGeckoService(IntegrationService):
    """Prices, trending coins and global market figures from CoinGecko."""

    name = "coingecko"

    def __init__(
        self,
        client: RateLimitedClient,
        settings: CoinGeckoSettings,
        *,
        alert_threshold_percent: float = 5.0,
    ) -> None:
        self._client = client
        self._settings = settings
        self._alert_threshold = alert_threshold_percent

    def clients(self) -> list[RateLimitedClient]:
        return [self._client]

    async def health_check(self) -> dict[str, Any]:
        return await timed_probe(
            self._client,
            "/ping",
            rate_limit="pro" if self._settings.api_key else "free",
        )

    async def get_top_cryptos(self, limit: int = 100) -> list[dict[str, Any]]:
        return await self._client.cached_get(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": limit,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "1h,24h,7d,30d",
            },
            max_age=self._settings.ttl("top_cryptos"),
        )

    async def get_coin_data(self, coin_id: str) -> dict[str, Any]:
        return await self._client.cached_get(
            f"/coins/{coin_id}",
            {
                "localization": "false",
                "tickers": "false",
                "market_data": "true",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "false",
            },
            max_age=self._settings.ttl("coin", 120),
        )

    async def get_trending_coins(self) -> dict[str, Any]:
        return await self._client.cached_get("/search/trending", max_age=self._settings.ttl("trending", 600))

    async def get_global_market_data(self) -> dict[str, Any]:
        return await self._client.cached_get("/global", max_age=self._settings.ttl("global"))

    async def get_defi_data(self) -> dict[str, Any]:
        return await self._client.cached_get(
            "/global/decentralized_finance_defi",
            max_age=self._settings.ttl("defi", 600),
        )

    async def search_coins(self, query: str) -> dict[str, Any]:
        return await self._client.request("/search", {"query": query})

    async def get_coin_history(self, coin_id: str, days: int = 30) -> dict[str, Any]:
        return await self._client.request(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": days, "interval": "daily" if days > 30 else "hourly"},
        )

    async def update_top_cryptos(self) -> dict[str, Any]:
        top_cryptos = await self.get_top_cryptos(50)
        trending = await self.get_trending_coins()
        global_data = await self.get_global_market_data()
        defi_data = await self.get_defi_data()

        analysis = analyze_market_conditions(
            top_cryptos,
            alert_threshold_percent=self._alert_threshold,
        )

        global_section = (global_data or {}).get("data", {})
        logger.info(
            "market.analysis_completed",
            extra={
                "source": self.name,
                "top_cryptos": len(top_cryptos),
                "trending_count": len((trending or {}).get("coins", [])),
                "total_market_cap_usd": global_section.get("total_market_cap", {}).get("usd"),
                "btc_dominance": global_section.get("market_cap_percentage", {}).get("btc"),
                "defi_market_cap": (defi_data or {}).get("data", {}).get("defi_market_cap"),
                "market_condition": analysis["condition"],
            },
        )

        return {
            "top_cryptos": top_cryptos,
            "trending": trending,
            "global": global_data,
            "defi": defi_data,
            "analysis": analysis,
        }
