"""Etherscan-family block explorer lookups over a rate-limited client."""

from __future__ import annotations

import json
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient

SOURCE_PREVIEW_CHARS = 1000


def _parse_abi(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # Unverified contracts answer with a plain sentence instead of JSON
        return None


class ExplorerClient:
    """Verified-source lookups against one network's explorer API.

    Without an API key the client is unavailable and never calls out.
    """

    def __init__(
        self,
        network: str,
        http: RateLimitedClient,
        api_key: str | None,
        *,
        source_ttl_seconds: float = 3600.0,
    ) -> None:
        self.network = network
        self.http = http
        self._api_key = api_key
        self._source_ttl_seconds = source_ttl_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def get_contract_source(self, address: str) -> dict[str, Any] | None:
        """Return name, compiler and a source preview for a verified contract.

        Returns ``None`` when the client has no key or the contract is not
        verified. Source longer than ``SOURCE_PREVIEW_CHARS`` is truncated.

        Raises:
            UpstreamAppError: The explorer could not be reached or answered non-2xx.
        """

        if not self.configured:
            return None

        body = await self.http.cached_get(
            self.http.base_url,
            {"module": "contract", "action": "getsourcecode", "address": address, "apikey": self._api_key},
            max_age=self._source_ttl_seconds,
            cache_key=f"source:{address.lower()}",
        )
        results = body.get("result") if isinstance(body, dict) else None
        entry = results[0] if isinstance(results, list) and results else None
        if not isinstance(entry, dict) or not entry.get("SourceCode"):
            return None

        source = entry["SourceCode"]
        if len(source) > SOURCE_PREVIEW_CHARS:
            source = source[:SOURCE_PREVIEW_CHARS] + "..."
        return {
            "contract_name": entry.get("ContractName"),
            "compiler_version": entry.get("CompilerVersion"),
            "optimization_used": entry.get("OptimizationUsed") == "1",
            "source_code": source,
            "abi": _parse_abi(entry.get("ABI")),
        }
