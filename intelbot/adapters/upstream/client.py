"""Rate-limited, cache-aware client for one outbound HTTP API.

Every integration talks to its upstream through exactly one
``RateLimitedClient``. The client:

- paces requests through a ``MinIntervalPacer`` (one slot, minimum gap)
- applies a fixed per-client timeout
- translates failures into ``UpstreamAppError`` / ``UpstreamTimeoutError``
  carrying the upstream status and body when available
- never retries; retry policy belongs to the caller or the task layer
- optionally answers reads from its own ``TTLCache``
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

import httpx

from intelbot.adapters.rate_limit.base import AbstractPacer
from intelbot.adapters.rate_limit.in_memory import MinIntervalPacer
from intelbot.core.errors import UpstreamAppError, UpstreamTimeoutError
from intelbot.core.logging import elapsed_ms, log_duration
from intelbot.utils.ttl_cache import TTLCache, build_cache_key

logger = logging.getLogger(__name__)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RateLimitedClient:
    """Paced HTTP client bound to a single base URL.

    Args:
        name: Integration name used in logs and errors.
        base_url: Upstream base URL.
        min_interval_seconds: Minimum gap between request starts.
        timeout_seconds: Per-request timeout.
        headers: Default headers (API key, bearer token).
        cache: Cache consulted by ``cached_get``; a private one is built if omitted.
        pacer: Pacing strategy; defaults to ``MinIntervalPacer``.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        min_interval_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        headers: Mapping[str, str] | None = None,
        cache: TTLCache | None = None,
        pacer: AbstractPacer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.cache = cache or TTLCache(name=name)
        self.pacer = pacer or MinIntervalPacer(min_interval_seconds=min_interval_seconds)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers=dict(headers or {}),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        method: str = "GET",
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Issue one paced request and return the decoded body.

        Args:
            endpoint: Path relative to the base URL (or absolute URL).
            params: Query string parameters.
            method: HTTP method.
            json: JSON body for POST/PUT/PATCH.
            headers: Extra headers for this call only.

        Returns:
            Decoded JSON body, raw text for non-JSON bodies, None when empty.

        Raises:
            UpstreamTimeoutError: The call exceeded ``timeout_seconds``.
            UpstreamAppError: Transport failure or non-2xx response.
        """

        pacing = await self.pacer.acquire()
        started = time.perf_counter()

        try:
            response = await self._client.request(
                method,
                endpoint,
                params=dict(params) if params else None,
                json=json,
                headers=dict(headers) if headers else None,
            )
        except httpx.TimeoutException as exc:
            logger.error(
                "client.timeout",
                extra={
                    "service": self.name,
                    "endpoint": endpoint,
                    "method": method,
                    "timeout_s": self.timeout_seconds,
                    "duration_ms": elapsed_ms(started),
                },
            )
            raise UpstreamTimeoutError(
                code="upstream_timeout",
                message=f"{self.name} request to {endpoint} timed out",
                details={
                    "service": self.name,
                    "endpoint": endpoint,
                    "timeout_s": self.timeout_seconds,
                },
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "client.transport_error",
                extra={
                    "service": self.name,
                    "endpoint": endpoint,
                    "method": method,
                    "error_type": type(exc).__name__,
                    "duration_ms": elapsed_ms(started),
                },
            )
            raise UpstreamAppError(
                code="upstream_unreachable",
                message=f"{self.name} request to {endpoint} failed: {exc}",
                details={"service": self.name, "endpoint": endpoint},
            ) from exc

        body = _decode_body(response)

        if response.is_error:
            logger.error(
                "client.upstream_error",
                extra={
                    "service": self.name,
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms(started),
                },
            )
            raise UpstreamAppError(
                code="upstream_error",
                message=f"{self.name} returned HTTP {response.status_code} for {endpoint}",
                details={
                    "service": self.name,
                    "endpoint": endpoint,
                    "upstream_status": response.status_code,
                },
                status_code=response.status_code,
                body=body,
            )

        log_duration(
            logger,
            "client.request",
            started,
            service=self.name,
            endpoint=endpoint,
            method=method,
            status_code=response.status_code,
            paced_ms=round(pacing.waited_seconds * 1000, 2),
        )
        return body

    async def cached_get(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        max_age: float,
        cache_key: str | None = None,
    ) -> Any:
        """GET through the cache; a fresh hit skips pacing and the network.

        Args:
            endpoint: Path relative to the base URL.
            params: Query parameters (part of the cache key).
            max_age: Freshness window in seconds for this operation.
            cache_key: Override for the derived key.
        """

        key = cache_key or build_cache_key(endpoint, params)
        cached = self.cache.get(key, max_age)
        if cached is not None:
            return cached

        data = await self.request(endpoint, params)
        self.cache.set(key, data)
        return data

    async def cached_post(
        self,
        endpoint: str,
        payload: Any,
        *,
        max_age: float,
    ) -> Any:
        """POST whose response is cacheable (JSON-RPC reads, GraphQL queries)."""

        key = build_cache_key(f"POST {endpoint}", {"body": payload})
        cached = self.cache.get(key, max_age)
        if cached is not None:
            return cached

        data = await self.request(endpoint, method="POST", json=payload)
        self.cache.set(key, data)
        return data
