"""Ethereum-style JSON-RPC over a rate-limited client."""

from __future__ import annotations

import itertools
from decimal import Decimal
from typing import Any

from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.errors import UpstreamAppError
from intelbot.utils.ttl_cache import build_cache_key

WEI_PER_GWEI = Decimal(10) ** 9


def hex_to_int(value: str | None) -> int | None:
    if value is None:
        return None
    return int(value, 16)


def wei_to_gwei(value: str | int | None) -> float | None:
    """Convert a hex or integer wei amount to gwei."""

    if value is None:
        return None
    wei = hex_to_int(value) if isinstance(value, str) else value
    return float(Decimal(wei) / WEI_PER_GWEI)


class JsonRpcClient:
    """JSON-RPC 2.0 caller for one network endpoint."""

    def __init__(self, network: str, http: RateLimitedClient) -> None:
        self.network = network
        self.http = http
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list[Any] | None = None, *, max_age: float | None = None) -> Any:
        """Invoke ``method`` and return its ``result``.

        When ``max_age`` is given the response is served from the client
        cache while fresh. The request id is left out of the cache key.

        Raises:
            UpstreamAppError: Transport failure or a JSON-RPC error object.
        """

        key = build_cache_key(f"rpc:{method}", {"params": params or []})
        if max_age is not None:
            cached = self.http.cache.get(key, max_age)
            if cached is not None:
                return cached

        body = await self.http.request(
            self.http.base_url,
            method="POST",
            json={"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []},
        )
        result = self._unwrap(method, body)

        if max_age is not None and result is not None:
            self.http.cache.set(key, result)
        return result

    def _unwrap(self, method: str, body: Any) -> Any:
        if not isinstance(body, dict):
            raise UpstreamAppError(
                code="rpc_invalid_response",
                message=f"{self.network} RPC returned a non-object body for {method}",
                details={"service": self.network, "endpoint": method},
                body=body,
            )
        if body.get("error"):
            error = body["error"]
            raise UpstreamAppError(
                code="rpc_error",
                message=f"{self.network} RPC {method} failed: {error.get('message', error)}",
                details={"service": self.network, "endpoint": method},
                body=error,
            )
        return body.get("result")

    async def block_number(self) -> int:
        return hex_to_int(await self.call("eth_blockNumber"))

    async def chain_id(self) -> int:
        return hex_to_int(await self.call("eth_chainId"))

    async def get_block(self, tag: str = "latest", *, full_transactions: bool = False) -> dict[str, Any] | None:
        return await self.call("eth_getBlockByNumber", [tag, full_transactions])
