"""Tests for RateLimitedClient (pacing, caching and error translation)."""

import asyncio
import logging

import httpx
import pytest

from conftest import FakeClock, json_response
from intelbot.adapters.rate_limit.in_memory import MinIntervalPacer
from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.core.errors import UpstreamAppError, UpstreamTimeoutError
from intelbot.utils.ttl_cache import TTLCache


def _client(handler, *, clock: FakeClock | None = None, **kwargs) -> RateLimitedClient:
    pacer = None
    if clock is not None:
        pacer = MinIntervalPacer(min_interval_seconds=1.0, clock=clock, sleep=clock.sleep)
    return RateLimitedClient(
        "test_api",
        "https://api.test",
        pacer=pacer,
        min_interval_seconds=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestRequest:
    """Single paced requests and error mapping."""

    def test_returns_decoded_json_and_sends_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response({"ok": True})

        async def run():
            client = _client(handler)
            try:
                return await client.request("/coins/markets", {"vs_currency": "usd"})
            finally:
                await client.aclose()

        assert asyncio.run(run()) == {"ok": True}
        assert seen[0].url.path == "/coins/markets"
        assert seen[0].url.params["vs_currency"] == "usd"

    def test_default_and_per_call_headers_are_sent(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response({})

        async def run():
            client = _client(handler, headers={"x-cg-pro-api-key": "k"})
            try:
                await client.request("/ping", headers={"Accept": "application/vnd.github+json"})
            finally:
                await client.aclose()

        asyncio.run(run())
        assert seen[0].headers["x-cg-pro-api-key"] == "k"
        assert seen[0].headers["Accept"] == "application/vnd.github+json"

    def test_post_sends_json_body(self) -> None:
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.content)
            return json_response({"data": 1})

        async def run():
            client = _client(handler)
            try:
                return await client.request("/graphql", method="POST", json={"query": "{ x }"})
            finally:
                await client.aclose()

        assert asyncio.run(run()) == {"data": 1}
        assert b'"query"' in seen[0]

    def test_non_2xx_raises_upstream_error_with_status_and_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return json_response({"error": "rate limited"}, status_code=429)

        async def run():
            client = _client(handler)
            try:
                await client.request("/coins/markets")
            finally:
                await client.aclose()

        with pytest.raises(UpstreamAppError) as exc_info:
            asyncio.run(run())

        assert exc_info.value.code == "upstream_error"
        assert exc_info.value.status_code == 429
        assert exc_info.value.body == {"error": "rate limited"}
        assert exc_info.value.details["service"] == "test_api"

    def test_timeout_raises_timeout_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        async def run():
            client = _client(handler)
            try:
                await client.request("/slow")
            finally:
                await client.aclose()

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            asyncio.run(run())

        assert exc_info.value.code == "upstream_timeout"
        assert exc_info.value.status_code is None

    def test_transport_failure_raises_upstream_error_without_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def run():
            client = _client(handler)
            try:
                await client.request("/down")
            finally:
                await client.aclose()

        with pytest.raises(UpstreamAppError) as exc_info:
            asyncio.run(run())

        assert not isinstance(exc_info.value, UpstreamTimeoutError)
        assert exc_info.value.code == "upstream_unreachable"
        assert exc_info.value.status_code is None

    def test_failures_are_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(503)

        async def run():
            client = _client(handler)
            try:
                await client.request("/flaky")
            finally:
                await client.aclose()

        with pytest.raises(UpstreamAppError):
            asyncio.run(run())
        assert len(calls) == 1

    def test_success_is_logged_with_duration(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="intelbot.adapters.upstream.client")

        async def run():
            client = _client(lambda request: json_response({"ok": True}))
            try:
                await client.request("/ping")
            finally:
                await client.aclose()

        asyncio.run(run())

        record = next(r for r in caplog.records if r.getMessage() == "client.request")
        assert record.service == "test_api"
        assert record.endpoint == "/ping"
        assert record.status_code == 200
        assert isinstance(record.duration_ms, float)


class TestPacing:
    def test_sequential_requests_respect_min_interval(self, fake_clock: FakeClock) -> None:
        starts: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            starts.append(fake_clock())
            return json_response({})

        async def run():
            client = _client(handler, clock=fake_clock)
            try:
                await client.request("/a")
                await client.request("/b")
            finally:
                await client.aclose()

        asyncio.run(run())

        assert starts[1] - starts[0] >= 1.0

    def test_concurrent_requests_respect_min_interval(self, fake_clock: FakeClock) -> None:
        starts: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            starts.append(fake_clock())
            return json_response({})

        async def run():
            client = _client(handler, clock=fake_clock)
            try:
                await asyncio.gather(*(client.request(f"/r{i}") for i in range(3)))
            finally:
                await client.aclose()

        asyncio.run(run())

        starts.sort()
        assert all(b - a >= 1.0 for a, b in zip(starts, starts[1:]))


class TestCachedGet:
    def test_fresh_hit_skips_network(self, fake_clock: FakeClock) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return json_response({"n": len(calls)})

        cache = TTLCache(clock=fake_clock)

        async def run():
            client = _client(handler, cache=cache)
            try:
                first = await client.cached_get("/global", max_age=300)
                second = await client.cached_get("/global", max_age=300)
                return first, second
            finally:
                await client.aclose()

        first, second = asyncio.run(run())

        assert first == second == {"n": 1}
        assert calls == ["/global"]

    def test_stale_entry_refetches(self, fake_clock: FakeClock) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return json_response({"n": len(calls)})

        cache = TTLCache(clock=fake_clock)

        async def run():
            client = _client(handler, cache=cache)
            try:
                await client.cached_get("/price", max_age=60)
                fake_clock.advance(61)
                return await client.cached_get("/price", max_age=60)
            finally:
                await client.aclose()

        assert asyncio.run(run()) == {"n": 2}

    def test_different_params_use_different_entries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return json_response({"id": request.url.params["id"]})

        async def run():
            client = _client(handler)
            try:
                a = await client.cached_get("/coins", {"id": "bitcoin"}, max_age=60)
                b = await client.cached_get("/coins", {"id": "ethereum"}, max_age=60)
                return a, b, len(client.cache)
            finally:
                await client.aclose()

        a, b, size = asyncio.run(run())
        assert a == {"id": "bitcoin"}
        assert b == {"id": "ethereum"}
        assert size == 2

    def test_errors_are_not_cached(self) -> None:
        responses = [httpx.Response(500), json_response({"ok": True})]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async def run():
            client = _client(handler)
            try:
                with pytest.raises(UpstreamAppError):
                    await client.cached_get("/x", max_age=60)
                return await client.cached_get("/x", max_age=60)
            finally:
                await client.aclose()

        assert asyncio.run(run()) == {"ok": True}
