"""Arkham Intelligence on-chain analytics integration.

The API key is optional at process level: without one the service reports
``unavailable`` health and every call raises ``ConfigurationAppError``.
"""

from __future__ import annotations

import logging
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.config import ArkhamSettings
from intelbot.core.errors import ConfigurationAppError
from intelbot.services.base import HEALTHY, UNAVAILABLE, IntegrationService

logger = logging.getLogger(__name__)

WHALE_TX_COUNT = 20
WHALE_VOLUME_USD = 100_000_000


def analyze_sentiment_trends(sentiment: dict[str, Any] | None, large_transactions: dict[str, Any] | None) -> dict[str, Any]:
    analysis: dict[str, Any] = {
        "overall_sentiment": "neutral",
        "whale_activity_level": "normal",
        "key_indicators": {},
        "alerts": [],
    }

    transactions = (large_transactions or {}).get("transactions")
    if transactions:
        tx_count = len(transactions)
        total_value = sum(tx.get("value_usd") or 0 for tx in transactions)
        analysis["key_indicators"]["large_transaction_count"] = tx_count
        analysis["key_indicators"]["total_whale_volume_usd"] = total_value

        if tx_count > WHALE_TX_COUNT or total_value > WHALE_VOLUME_USD:
            analysis["whale_activity_level"] = "high"
            analysis["alerts"].append(
                {
                    "type": "high_whale_activity",
                    "message": (
                        f"High whale activity detected: {tx_count} large transactions "
                        f"worth ${total_value / 1_000_000:.1f}M"
                    ),
                    "severity": "medium",
                }
            )

    social = (sentiment or {}).get("social_metrics")
    if social:
        bullish_ratio = social.get("bullish_ratio")
        if bullish_ratio is not None:
            if bullish_ratio > 0.7:
                analysis["overall_sentiment"] = "bullish"
            elif bullish_ratio < 0.3:
                analysis["overall_sentiment"] = "bearish"
        analysis["key_indicators"]["bullish_ratio"] = bullish_ratio
        analysis["key_indicators"]["fear_greed_index"] = social.get("fear_greed_index")

    return analysis


class ArkhamIntelService(IntegrationService):
    name = "arkham_intel"

    def __init__(self, client: RateLimitedClient, settings: ArkhamSettings) -> None:
        self._client = client
        self._settings = settings

    def clients(self) -> list[RateLimitedClient]:
        return [self._client]

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key)

    def _require_key(self) -> None:
        if not self.configured:
            raise ConfigurationAppError(
                code="arkham_api_key_missing",
                message="Arkham Intel API key not configured",
                details={"service": self.name, "hint": "Set ARKHAM_API_KEY"},
            )

    async def _get(self, endpoint: str, params: dict[str, Any], operation: str) -> Any:
        self._require_key()
        return await self._client.cached_get(endpoint, params, max_age=self._settings.ttl(operation))

    async def health_check(self) -> dict[str, Any]:
        if not self.configured:
            return {"status": UNAVAILABLE, "error": "API key not configured"}
        return {
            "status": HEALTHY,
            "features": ["address_analysis", "transaction_tracking", "portfolio_insights"],
        }

    async def analyze_address(self, address: str, chain: str = "ethereum") -> dict[str, Any]:
        data = await self._get(
            "/address/analyze",
            {
                "address": address,
                "chain": chain,
                "include_transactions": "true",
                "include_labels": "true",
                "include_portfolio": "true",
            },
            "address",
        )
        logger.info(
            "onchain.address_analyzed",
            extra={"source": self.name, "address": address[:10] + "...", "chain": chain},
        )
        return data

    async def get_transaction_insights(self, tx_hash: str, chain: str = "ethereum") -> dict[str, Any]:
        return await self._get(
            "/transaction/insights",
            {"tx_hash": tx_hash, "chain": chain},
            "transaction",
        )

    async def get_portfolio_insights(self, address: str, chain: str = "ethereum") -> dict[str, Any]:
        return await self._get(
            "/portfolio/insights",
            {"address": address, "chain": chain},
            "portfolio",
        )

    async def track_large_transactions(
        self,
        min_value_usd: int = 1_000_000,
        chains: tuple[str, ...] = ("ethereum", "polygon"),
    ) -> dict[str, Any]:
        data = await self._get(
            "/transactions/large",
            {"min_value_usd": min_value_usd, "chains": ",".join(chains), "limit": 50},
            "large_transactions",
        )
        transactions = (data or {}).get("transactions") or []
        if transactions:
            logger.info(
                "onchain.large_transactions_detected",
                extra={"source": self.name, "count": len(transactions), "min_value_usd": min_value_usd},
            )
        return data

    async def get_market_sentiment(self) -> dict[str, Any]:
        return await self._get(
            "/market/sentiment",
            {"include_social_metrics": "true", "include_whale_activity": "true", "time_range": "24h"},
            "sentiment",
        )

    async def get_address_labels(self, address: str, chain: str = "ethereum") -> dict[str, Any]:
        return await self._get("/address/labels", {"address": address, "chain": chain}, "labels")

    async def search_entity(self, query: str) -> dict[str, Any]:
        self._require_key()
        return await self._client.request("/entity/search", {"query": query})

    async def update_market_sentiment(self) -> dict[str, Any]:
        sentiment = await self.get_market_sentiment()
        large_transactions = await self.track_large_transactions()
        analysis = analyze_sentiment_trends(sentiment, large_transactions)

        logger.info(
            "onchain.sentiment_analysis_completed",
            extra={
                "source": self.name,
                "sentiment": analysis["overall_sentiment"],
                "whale_activity": analysis["whale_activity_level"],
                "alerts": len(analysis["alerts"]),
            },
        )
        return {"sentiment": sentiment, "large_transactions": large_transactions, "analysis": analysis}
