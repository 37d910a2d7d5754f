"""CoinDesk Bitcoin price index integration."""

from __future__ import annotations

import logging
import math
import time
from datetime import date, timedelta
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.config import CoinDeskSettings
from intelbot.core.logging import elapsed_ms
from intelbot.services.base import HEALTHY, IntegrationService

logger = logging.getLogger(__name__)


def analyze_bitcoin_trend(current_price: dict[str, Any] | None, historical: dict[str, Any] | None) -> dict[str, Any]:
    """Derive 30-day trend, volatility band, support/resistance and alerts."""

    analysis: dict[str, Any] = {
        "trend": "neutral",
        "change_30d": 0.0,
        "volatility": "low",
        "support": None,
        "resistance": None,
        "alerts": [],
    }

    current = ((current_price or {}).get("bpi") or {}).get("USD", {}).get("rate_float")
    history = (historical or {}).get("bpi")
    if not current or not history:
        return analysis

    prices = list(history.values())
    oldest = prices[0]
    if not oldest:
        return analysis

    change = (current - oldest) / oldest * 100
    analysis["change_30d"] = change

    if change > 10:
        analysis["trend"] = "bullish"
    elif change < -10:
        analysis["trend"] = "bearish"

    mean = sum(prices) / len(prices)
    variance = sum((price - mean) ** 2 for price in prices) / len(prices)
    volatility_percent = math.sqrt(variance) / mean * 100

    if volatility_percent > 5:
        analysis["volatility"] = "high"
    elif volatility_percent > 2:
        analysis["volatility"] = "medium"

    analysis["support"] = min(prices)
    analysis["resistance"] = max(prices)

    if abs(change) > 20:
        analysis["alerts"].append(
            {
                "type": "strong_uptrend" if change > 0 else "strong_downtrend",
                "message": f"Bitcoin {'gained' if change > 0 else 'lost'} {abs(change):.2f}% in 30 days",
                "severity": "high",
            }
        )
    if volatility_percent > 8:
        analysis["alerts"].append(
            {
                "type": "high_volatility",
                "message": f"Bitcoin showing high volatility: {volatility_percent:.2f}%",
                "severity": "medium",
            }
        )

    return analysis


class CoinDeskService(IntegrationService):
    name = "coindesk"

    def __init__(self, client: RateLimitedClient, settings: CoinDeskSettings) -> None:
        self._client = client
        self._settings = settings

    def clients(self) -> list[RateLimitedClient]:
        return [self._client]

    async def health_check(self) -> dict[str, Any]:
        started = time.perf_counter()
        data = await self.get_current_bitcoin_price()
        return {
            "status": HEALTHY,
            "response_time_ms": elapsed_ms(started),
            "last_price": ((data or {}).get("bpi") or {}).get("USD", {}).get("rate"),
        }

    async def get_current_bitcoin_price(self) -> dict[str, Any]:
        return await self._client.cached_get(
            "/bpi/currentprice.json",
            max_age=self._settings.ttl("current_price", 60),
        )

    async def get_bitcoin_price_index(self) -> dict[str, Any]:
        """Full BPI document (USD, GBP, EUR rates), kept for a longer window."""

        return await self._client.cached_get(
            "/bpi/currentprice.json",
            max_age=self._settings.ttl("price_index", 300),
            cache_key="bpi:price_index",
        )

    async def get_historical_bitcoin_price(self, start: str | None = None, end: str | None = None) -> dict[str, Any]:
        params = {key: value for key, value in {"start": start, "end": end}.items() if value}
        return await self._client.cached_get(
            "/bpi/historical/close.json",
            params,
            max_age=self._settings.ttl("historical", 3600),
        )

    async def get_bitcoin_price_for_date(self, day: str) -> dict[str, Any]:
        return await self._client.request(f"/bpi/historical/close/{day}.json")

    async def update_bitcoin_data(self) -> dict[str, Any]:
        current = await self.get_current_bitcoin_price()
        today = date.today()
        historical = await self.get_historical_bitcoin_price(
            (today - timedelta(days=30)).isoformat(),
            today.isoformat(),
        )
        analysis = analyze_bitcoin_trend(current, historical)

        logger.info(
            "market.bitcoin_analysis_completed",
            extra={
                "source": self.name,
                "trend": analysis["trend"],
                "change_30d": analysis["change_30d"],
                "volatility": analysis["volatility"],
            },
        )
        return {"current": current, "historical": historical, "analysis": analysis}
