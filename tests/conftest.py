"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any ``intelbot`` import so the global
settings instance never picks up a developer's .env file values for the
credentials the tests depend on.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import json
from typing import Any, Callable

import httpx
import pytest

from intelbot.core.config import Settings
from intelbot.webhooks.signature import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"


class FakeClock:
    """Deterministic clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the scheduler and startup warm-up off and one RPC network configured."""

    return Settings(
        app_env="testing",
        scheduler={"enabled": False},
        blockchain={"ethereum_rpc_url": "https://rpc.test/eth", "rpc_min_interval_seconds": 0},
        coingecko={"min_interval_seconds": 0},
        coindesk={"min_interval_seconds": 0},
        arkham={"min_interval_seconds": 0},
        defi={"min_interval_seconds": 0},
        explorer={"etherscan_api_key": None, "polygonscan_api_key": None, "arbiscan_api_key": None},
        github={"webhook_secret": WEBHOOK_SECRET, "bot_mention": "@bot"},
        app={"api_key_required": True, "api_keys": "test-api-key-123", "warm_up_on_startup": False},
    )


def signed_headers(body: bytes, event: str, *, delivery: str = "delivery-1") -> dict[str, str]:
    return {
        "X-Hub-Signature-256": compute_signature(body, WEBHOOK_SECRET),
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery,
        "Content-Type": "application/json",
    }


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"Content-Type": "application/json"})


def rpc_router(results: dict[str, Any]) -> Callable[[httpx.Request], httpx.Response]:
    """Build a MockTransport handler answering JSON-RPC calls by method name."""

    def handler(request: httpx.Request) -> httpx.Response:
        call = json.loads(request.content)
        method = call["method"]
        if method not in results:
            return json_response({"jsonrpc": "2.0", "id": call["id"], "error": {"code": -32601, "message": "method not found"}})
        result = results[method]
        if callable(result):
            result = result(call["params"])
        return json_response({"jsonrpc": "2.0", "id": call["id"], "result": result})

    return handler
