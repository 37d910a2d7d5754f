"""Tests for the integration services driven through httpx.MockTransport."""

import asyncio
import json
from typing import Any

import httpx
import pytest

from conftest import FakeClock, json_response, rpc_router
from intelbot.adapters.upstream.client import RateLimitedClient
from intelbot.adapters.upstream.explorer import ExplorerClient
from intelbot.adapters.upstream.rpc import JsonRpcClient, hex_to_int, wei_to_gwei
from intelbot.core.config import ArkhamSettings, CoinDeskSettings, CoinGeckoSettings
from intelbot.core.errors import ConfigurationAppError, UpstreamAppError
from intelbot.services.arkham import ArkhamIntelService, analyze_sentiment_trends
from intelbot.services.coindesk import CoinDeskService, analyze_bitcoin_trend
from intelbot.services.coingecko import CoinGeckoService, analyze_market_conditions
from intelbot.services.defi import DeFiMonitoringService
from intelbot.services.gas import GasEstimationService, analyze_gas_trends
from intelbot.services.network import NetworkMonitoringService, analyze_deployment_trends
from intelbot.utils.ttl_cache import TTLCache

GWEI = 10**9


def _http(name: str, handler, base_url: str = "https://api.test", **kwargs: Any) -> RateLimitedClient:
    return RateLimitedClient(name, base_url, min_interval_seconds=0, transport=httpx.MockTransport(handler), **kwargs)


def _rpc(results: dict[str, Any], calls: list[str] | None = None, network: str = "ethereum") -> JsonRpcClient:
    route = rpc_router(results)

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(json.loads(request.content)["method"])
        return route(request)

    return JsonRpcClient(network, _http(f"rpc:{network}", handler, base_url=f"https://rpc.test/{network}"))


class Recorder:
    """MockTransport handler answering every request with one JSON body."""

    def __init__(self, body: Any = None, status_code: int = 200) -> None:
        self.body = {} if body is None else body
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return json_response(self.body, self.status_code)

    def params(self, index: int = -1) -> dict[str, str]:
        return dict(self.requests[index].url.params)


GAS_RESULTS = {
    "eth_gasPrice": hex(30 * GWEI),
    "eth_maxPriorityFeePerGas": hex(2 * GWEI),
    "eth_getBlockByNumber": {"number": "0x10", "baseFeePerGas": hex(20 * GWEI)},
    "eth_blockNumber": "0x10",
    "eth_estimateGas": hex(21_000),
    "eth_getCode": "0x6080",
}


class TestJsonRpc:
    def test_unit_helpers(self) -> None:
        assert hex_to_int("0x10") == 16
        assert hex_to_int(None) is None
        assert wei_to_gwei(hex(15 * GWEI)) == 15.0
        assert wei_to_gwei(GWEI // 2) == 0.5

    def test_rpc_error_object_raises_and_is_not_cached(self) -> None:
        calls: list[str] = []
        rpc = _rpc({}, calls)

        async def run():
            for _ in range(2):
                with pytest.raises(UpstreamAppError) as exc_info:
                    await rpc.call("eth_gasPrice", max_age=30)
                assert exc_info.value.code == "rpc_error"
            await rpc.http.aclose()

        asyncio.run(run())
        assert calls == ["eth_gasPrice", "eth_gasPrice"]

    def test_posts_to_endpoint_url_exactly(self) -> None:
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return json_response({"jsonrpc": "2.0", "id": 1, "result": "0x1"})

        rpc = JsonRpcClient("ethereum", _http("rpc", handler, base_url="https://rpc.test/v2/key"))

        async def run():
            try:
                return await rpc.chain_id()
            finally:
                await rpc.http.aclose()

        assert asyncio.run(run()) == 1
        assert urls == ["https://rpc.test/v2/key"]


class TestGasEstimation:
    def test_gas_price_in_gwei_with_eip1559_fields(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS)})

        gas = asyncio.run(service.get_gas_price("ethereum"))

        assert gas["gas_price"] == 30.0
        assert gas["max_priority_fee_per_gas"] == 2.0
        assert gas["base_fee"] == 20.0
        assert gas["max_fee_per_gas"] == 42.0

    def test_gas_price_is_cached_within_window(self) -> None:
        calls: list[str] = []
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS, calls)}, gas_price_ttl_seconds=30)

        async def run():
            await service.get_gas_price("ethereum")
            await service.get_gas_price("ethereum")

        asyncio.run(run())
        assert calls.count("eth_gasPrice") == 1

    def test_legacy_chain_without_priority_fee(self) -> None:
        results = {"eth_gasPrice": hex(5 * GWEI), "eth_getBlockByNumber": {"number": "0x1"}}
        service = GasEstimationService({"bsc": _rpc(results, network="bsc")})

        gas = asyncio.run(service.get_gas_price("bsc"))

        assert gas["gas_price"] == 5.0
        assert gas["max_fee_per_gas"] is None
        assert gas["max_priority_fee_per_gas"] is None

    def test_unconfigured_network_raises_configuration_error(self) -> None:
        service = GasEstimationService({})

        with pytest.raises(ConfigurationAppError):
            asyncio.run(service.get_gas_price("polygon"))

    def test_health_unavailable_without_rpc(self) -> None:
        assert asyncio.run(GasEstimationService({}).health_check())["status"] == "unavailable"

    def test_health_reports_per_network(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS), "polygon": _rpc({}, network="polygon")})

        health = asyncio.run(service.health_check())

        assert health["status"] == "healthy"
        assert health["networks"]["ethereum"] == {"status": "healthy", "block_number": 16}
        assert health["networks"]["polygon"]["status"] == "error"
        assert health["healthy_networks"] == 1

    def test_update_gas_prices_flags_high_networks(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS)}, threshold_gwei=25)

        update = asyncio.run(service.update_gas_prices())

        assert update["analysis"]["high_gas_networks"] == [
            {"network": "ethereum", "gas_price": 30.0, "severity": "medium"}
        ]

    def test_estimate_transaction_cost(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS)})

        estimate = asyncio.run(service.estimate_transaction_cost("0xabc"))

        assert estimate["gas_limit"] == 21_000
        assert estimate["estimated_costs"]["legacy"]["cost_gwei"] == 21_000 * 30.0
        assert estimate["estimated_costs"]["eip1559"]["max_cost_gwei"] == 21_000 * 42.0

    def test_analyze_contract_gas(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS)})

        analysis = asyncio.run(service.analyze_contract_gas("0xabc"))

        assert analysis["code_size"] == 2
        assert [f["name"] for f in analysis["functions"]] == ["transfer", "approve", "transferFrom", "mint", "burn"]

    def test_analyze_contract_gas_without_code(self) -> None:
        service = GasEstimationService({"ethereum": _rpc({**GAS_RESULTS, "eth_getCode": "0x"})})

        with pytest.raises(UpstreamAppError) as exc_info:
            asyncio.run(service.analyze_contract_gas("0xabc"))

        assert exc_info.value.code == "contract_not_found"

    def test_analyze_and_update(self) -> None:
        service = GasEstimationService({"ethereum": _rpc(GAS_RESULTS)})

        result = asyncio.run(service.analyze_and_update("acme", "vault"))

        assert result["repository"] == "acme/vault"
        assert result["gas_snapshot"][0]["network"] == "ethereum"
        assert result["recommendations"]

    def test_analyze_gas_trends_ignores_errors(self) -> None:
        analysis = analyze_gas_trends(
            [
                {"network": "ethereum", "gas_price": 120.0},
                {"network": "polygon", "gas_price": 40.0},
                {"network": "bsc", "error": "down"},
            ],
            threshold_gwei=50,
        )

        assert analysis["high_gas_networks"][0]["severity"] == "high"
        assert analysis["summary"]["average_gas_price"] == 80.0
        assert analysis["summary"]["highest_gas_network"] == "ethereum"
        assert analysis["summary"]["lowest_gas_network"] == "polygon"


def _block(params: list[Any]) -> dict[str, Any]:
    return {
        "number": params[0],
        "transactions": [
            {"hash": "0xdeploy", "to": None, "from": "0xdeployer", "gasPrice": hex(GWEI)},
            {"hash": "0xtransfer", "to": "0xsomeone", "from": "0xdeployer", "gasPrice": hex(GWEI)},
        ],
    }


NETWORK_RESULTS = {
    "eth_blockNumber": "0x10",
    "eth_chainId": "0x1",
    "eth_gasPrice": hex(GWEI),
    "eth_getBlockByNumber": _block,
    "eth_getTransactionReceipt": {"contractAddress": "0xnew", "gasUsed": hex(500_000), "blockNumber": "0x10"},
}


VERIFIED_SOURCE = {
    "SourceCode": "pragma solidity ^0.8.20;\n" + "// padding\n" * 200,
    "ContractName": "Vault",
    "CompilerVersion": "v0.8.20+commit.a1b79de6",
    "OptimizationUsed": "1",
    "ABI": '[{"type": "function", "name": "deposit"}]',
}


def _explorer(handler, *, api_key: str | None, network: str = "ethereum", **kwargs: Any) -> ExplorerClient:
    http = _http(f"explorer:{network}", handler, base_url="https://explorer.test/api", **kwargs)
    return ExplorerClient(network, http, api_key)


class TestExplorer:
    def test_source_lookup_params_and_preview(self) -> None:
        recorder = Recorder({"status": "1", "result": [VERIFIED_SOURCE]})
        explorer = _explorer(recorder, api_key="ek")

        source = asyncio.run(explorer.get_contract_source("0xNew"))

        assert str(recorder.requests[0].url).startswith("https://explorer.test/api?")
        assert recorder.params() == {
            "module": "contract",
            "action": "getsourcecode",
            "address": "0xNew",
            "apikey": "ek",
        }
        assert source["contract_name"] == "Vault"
        assert source["optimization_used"] is True
        assert source["abi"] == [{"type": "function", "name": "deposit"}]
        assert len(source["source_code"]) == 1003
        assert source["source_code"].endswith("...")

    def test_short_source_is_not_truncated(self) -> None:
        entry = {**VERIFIED_SOURCE, "SourceCode": "contract A {}", "OptimizationUsed": "0"}
        explorer = _explorer(Recorder({"result": [entry]}), api_key="ek")

        source = asyncio.run(explorer.get_contract_source("0xa"))

        assert source["source_code"] == "contract A {}"
        assert source["optimization_used"] is False

    def test_unverified_contract_returns_none(self) -> None:
        entry = {"SourceCode": "", "ABI": "Contract source code not verified"}
        explorer = _explorer(Recorder({"status": "1", "result": [entry]}), api_key="ek")

        assert asyncio.run(explorer.get_contract_source("0xa")) is None

    def test_without_key_never_calls_out(self) -> None:
        recorder = Recorder({"result": [VERIFIED_SOURCE]})
        explorer = _explorer(recorder, api_key=None)

        assert explorer.configured is False
        assert asyncio.run(explorer.get_contract_source("0xa")) is None
        assert recorder.requests == []

    def test_source_is_cached_per_address(self, fake_clock: FakeClock) -> None:
        recorder = Recorder({"result": [VERIFIED_SOURCE]})
        explorer = _explorer(recorder, api_key="ek", cache=TTLCache(clock=fake_clock))

        async def run():
            await explorer.get_contract_source("0xABC")
            await explorer.get_contract_source("0xabc")
            fake_clock.advance(3601)
            await explorer.get_contract_source("0xabc")

        asyncio.run(run())

        assert len(recorder.requests) == 2


class TestNetworkMonitoring:
    def test_scan_finds_contract_creations(self) -> None:
        service = NetworkMonitoringService({"ethereum": _rpc(NETWORK_RESULTS)})

        scan = asyncio.run(service.scan_contract_deployments("ethereum"))

        assert scan["to_block"] == 16
        assert len(scan["deployments"]) == 1
        deployment = scan["deployments"][0]
        assert deployment["contract_address"] == "0xnew"
        assert deployment["gas_used"] == 500_000
        assert deployment["deployment_cost_wei"] == 500_000 * GWEI

    def test_scan_all_networks_isolates_failures(self) -> None:
        service = NetworkMonitoringService(
            {"ethereum": _rpc(NETWORK_RESULTS), "polygon": _rpc({}, network="polygon")}
        )

        result = asyncio.run(service.scan_all_networks())

        by_network = {r["network"]: r for r in result["scan_results"]}
        assert "error" in by_network["polygon"]
        assert result["analysis"]["total_deployments"] == 1
        assert result["analysis"]["active_networks"] == ["ethereum"]

    def test_initialize_and_update_repository(self) -> None:
        service = NetworkMonitoringService({"ethereum": _rpc(NETWORK_RESULTS)})

        async def run():
            init = await service.initialize_repository("acme", "vault")
            update = await service.update_deployments("acme", "vault")
            health = await service.health_check()
            return init, update, health

        init, update, health = asyncio.run(run())

        assert init["initialized"] is True
        assert "acme/vault" in service.monitored_repositories
        assert update["relevant_deployments"][0]["contract_address"] == "0xnew"
        assert health["monitored_repos"] == 1
        assert health["networks"]["ethereum"] == {"status": "healthy", "block_number": 16, "chain_id": 1}

    def test_network_status(self) -> None:
        service = NetworkMonitoringService({"ethereum": _rpc(NETWORK_RESULTS)})

        status = asyncio.run(service.get_network_status("ethereum"))

        assert status["chain_id"] == 1
        assert status["gas_price_wei"] == GWEI

    def test_health_unavailable_without_rpc(self) -> None:
        assert asyncio.run(NetworkMonitoringService({}).health_check())["status"] == "unavailable"

    def test_deployments_carry_verified_source(self) -> None:
        explorer = Recorder({"status": "1", "result": [VERIFIED_SOURCE]})
        service = NetworkMonitoringService(
            {"ethereum": _rpc(NETWORK_RESULTS)},
            explorers={"ethereum": _explorer(explorer, api_key="ek")},
        )

        async def run():
            scan = await service.scan_contract_deployments("ethereum")
            health = await service.health_check()
            await service.aclose()
            return scan, health

        scan, health = asyncio.run(run())

        source = scan["deployments"][0]["source_code"]
        assert source["contract_name"] == "Vault"
        assert explorer.params()["address"] == "0xnew"
        assert health["explorers"] == {"ethereum": "configured"}

    def test_explorer_failure_keeps_the_deployment(self) -> None:
        service = NetworkMonitoringService(
            {"ethereum": _rpc(NETWORK_RESULTS)},
            explorers={"ethereum": _explorer(Recorder(status_code=502), api_key="ek")},
        )

        scan = asyncio.run(service.scan_contract_deployments("ethereum"))

        assert scan["deployments"][0]["contract_address"] == "0xnew"
        assert "source_code" not in scan["deployments"][0]

    def test_explorer_without_key_is_unavailable(self) -> None:
        explorer = Recorder({"result": [VERIFIED_SOURCE]})
        service = NetworkMonitoringService(
            {"ethereum": _rpc(NETWORK_RESULTS)},
            explorers={"polygon": _explorer(explorer, api_key=None, network="polygon")},
        )

        health = asyncio.run(service.health_check())

        assert health["explorers"] == {"polygon": "unavailable"}
        assert explorer.requests == []

    def test_track_contract_activity_reads_recent_logs(self) -> None:
        filters: list[dict[str, Any]] = []

        def get_logs(params: list[Any]) -> list[dict[str, Any]]:
            filters.append(params[0])
            return [{"logIndex": hex(i)} for i in range(15)]

        rpc = _rpc({**NETWORK_RESULTS, "eth_blockNumber": hex(5000), "eth_getLogs": get_logs})
        service = NetworkMonitoringService({"ethereum": rpc})

        activity = asyncio.run(service.track_contract_activity("0xvault", "ethereum"))

        assert filters == [{"address": "0xvault", "fromBlock": hex(4000), "toBlock": "latest"}]
        assert activity["from_block"] == 4000
        assert activity["to_block"] == 5000
        assert activity["event_count"] == 15
        assert len(activity["events"]) == 10

    def test_track_contract_activity_on_young_chain_starts_at_genesis(self) -> None:
        rpc = _rpc({**NETWORK_RESULTS, "eth_getLogs": []})
        service = NetworkMonitoringService({"ethereum": rpc})

        activity = asyncio.run(service.track_contract_activity("0xvault", "ethereum"))

        assert activity["from_block"] == 0
        assert activity["events"] == []

    def test_track_contract_activity_unknown_network(self) -> None:
        service = NetworkMonitoringService({"ethereum": _rpc(NETWORK_RESULTS)})

        with pytest.raises(ConfigurationAppError):
            asyncio.run(service.track_contract_activity("0xvault", "solana"))

    def test_deployment_trend_alerts(self) -> None:
        deployments = [{"gas_used": 100}] * 60
        analysis = analyze_deployment_trends(
            [{"network": "ethereum", "deployments": deployments}, {"network": "bsc", "deployments": []}]
        )

        assert analysis["alerts"][0]["severity"] == "high"
        assert analysis["summary"]["most_active_network"] == "ethereum"
        assert analysis["summary"]["average_gas_used"] == 100


def _coingecko_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/coins/markets"):
        return json_response(
            [
                {"id": "bitcoin", "price_change_percentage_24h": 8.0},
                {"id": "ethereum", "price_change_percentage_24h": 7.0},
                {"id": "solana", "price_change_percentage_24h": 6.0},
            ]
        )
    if path.endswith("/search/trending"):
        return json_response({"coins": [{"item": {"id": "pepe"}}]})
    if path.endswith("/global/decentralized_finance_defi"):
        return json_response({"data": {"defi_market_cap": "1"}})
    if path.endswith("/global"):
        return json_response({"data": {"total_market_cap": {"usd": 1}, "market_cap_percentage": {"btc": 50}}})
    if path.endswith("/ping"):
        return json_response({"gecko_says": "(V3) To the Moon!"})
    return httpx.Response(404)


class TestCoinGecko:
    def test_update_top_cryptos_classifies_market(self) -> None:
        service = CoinGeckoService(_http("coingecko", _coingecko_handler), CoinGeckoSettings(api_key=None))

        result = asyncio.run(service.update_top_cryptos())

        assert result["analysis"]["condition"] == "bullish"
        assert result["analysis"]["alerts"][0]["type"] == "pump"
        assert result["trending"]["coins"][0]["item"]["id"] == "pepe"

    def test_health_uses_ping(self) -> None:
        service = CoinGeckoService(_http("coingecko", _coingecko_handler), CoinGeckoSettings(api_key=None))

        health = asyncio.run(service.health_check())

        assert health["status"] == "healthy"
        assert health["rate_limit"] == "free"
        assert health["response_time_ms"] >= 0

    def test_coin_data_params_and_cache_window(self, fake_clock: FakeClock) -> None:
        recorder = Recorder({"id": "bitcoin", "market_data": {}})
        http = _http("coingecko", recorder, cache=TTLCache(clock=fake_clock))
        service = CoinGeckoService(http, CoinGeckoSettings(api_key=None))

        async def run():
            await service.get_coin_data("bitcoin")
            fake_clock.advance(119)
            await service.get_coin_data("bitcoin")
            fake_clock.advance(2)
            return await service.get_coin_data("bitcoin")

        assert asyncio.run(run())["id"] == "bitcoin"
        assert len(recorder.requests) == 2
        assert recorder.requests[0].url.path == "/coins/bitcoin"
        assert recorder.params(0) == {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
            "sparkline": "false",
        }

    def test_search_coins_is_never_cached(self) -> None:
        recorder = Recorder({"coins": [{"id": "uniswap"}]})
        service = CoinGeckoService(_http("coingecko", recorder), CoinGeckoSettings(api_key=None))

        async def run():
            await service.search_coins("uni")
            return await service.search_coins("uni")

        assert asyncio.run(run())["coins"][0]["id"] == "uniswap"
        assert [r.url.path for r in recorder.requests] == ["/search", "/search"]
        assert recorder.params() == {"query": "uni"}

    @pytest.mark.parametrize(
        ("days", "interval"),
        [(7, "hourly"), (30, "hourly"), (31, "daily"), (365, "daily")],
    )
    def test_coin_history_interval_follows_range(self, days: int, interval: str) -> None:
        recorder = Recorder({"prices": [[0, 1.0]]})
        service = CoinGeckoService(_http("coingecko", recorder), CoinGeckoSettings(api_key=None))

        asyncio.run(service.get_coin_history("ethereum", days=days))

        assert recorder.requests[0].url.path == "/coins/ethereum/market_chart"
        assert recorder.params() == {"vs_currency": "usd", "days": str(days), "interval": interval}

    def test_market_conditions(self) -> None:
        bearish = analyze_market_conditions(
            [{"price_change_percentage_24h": -14.0}, {"price_change_percentage_24h": -8.0}],
            alert_threshold_percent=5,
        )
        empty = analyze_market_conditions([], alert_threshold_percent=5)

        assert bearish["condition"] == "bearish"
        assert bearish["alerts"][0]["type"] == "dump"
        assert bearish["alerts"][0]["severity"] == "high"
        assert empty["condition"] == "neutral"


class TestCoinDesk:
    def test_bitcoin_trend(self) -> None:
        analysis = analyze_bitcoin_trend(
            {"bpi": {"USD": {"rate_float": 120.0}}},
            {"bpi": {"2024-01-01": 100.0, "2024-01-02": 105.0, "2024-01-03": 110.0}},
        )

        assert analysis["trend"] == "bullish"
        assert analysis["change_30d"] == pytest.approx(20.0)
        assert analysis["volatility"] == "medium"
        assert analysis["support"] == 100.0
        assert analysis["resistance"] == 110.0

    def test_update_bitcoin_data(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("currentprice.json"):
                return json_response({"bpi": {"USD": {"rate": "100", "rate_float": 100.0}}})
            return json_response({"bpi": {"d1": 100.0, "d2": 100.0}})

        service = CoinDeskService(_http("coindesk", handler), CoinDeskSettings())

        result = asyncio.run(service.update_bitcoin_data())

        assert result["analysis"]["trend"] == "neutral"
        assert result["analysis"]["volatility"] == "low"

    def test_price_for_date_hits_dated_endpoint_uncached(self) -> None:
        recorder = Recorder({"bpi": {"2024-01-05": 44_000.0}})
        service = CoinDeskService(_http("coindesk", recorder), CoinDeskSettings())

        async def run():
            await service.get_bitcoin_price_for_date("2024-01-05")
            return await service.get_bitcoin_price_for_date("2024-01-05")

        assert asyncio.run(run())["bpi"]["2024-01-05"] == 44_000.0
        assert [r.url.path for r in recorder.requests] == ["/bpi/historical/close/2024-01-05.json"] * 2

    def test_price_index_has_its_own_five_minute_window(self, fake_clock: FakeClock) -> None:
        recorder = Recorder({"bpi": {"USD": {"rate_float": 1.0}, "EUR": {"rate_float": 0.9}}})
        service = CoinDeskService(_http("coindesk", recorder, cache=TTLCache(clock=fake_clock)), CoinDeskSettings())

        async def run():
            await service.get_bitcoin_price_index()
            fake_clock.advance(299)
            await service.get_bitcoin_price_index()
            after_window = len(recorder.requests)
            fake_clock.advance(2)
            await service.get_bitcoin_price_index()
            return after_window

        assert asyncio.run(run()) == 1
        assert len(recorder.requests) == 2
        assert {r.url.path for r in recorder.requests} == {"/bpi/currentprice.json"}

    def test_price_index_does_not_reuse_current_price_entry(self, fake_clock: FakeClock) -> None:
        recorder = Recorder({"bpi": {"USD": {"rate_float": 1.0}}})
        service = CoinDeskService(_http("coindesk", recorder, cache=TTLCache(clock=fake_clock)), CoinDeskSettings())

        async def run():
            await service.get_current_bitcoin_price()
            await service.get_bitcoin_price_index()

        asyncio.run(run())

        assert len(recorder.requests) == 2


class TestArkham:
    def test_unavailable_without_key(self) -> None:
        service = ArkhamIntelService(_http("arkham", lambda r: httpx.Response(500)), ArkhamSettings(api_key=None))

        assert asyncio.run(service.health_check())["status"] == "unavailable"
        with pytest.raises(ConfigurationAppError):
            asyncio.run(service.analyze_address("0x1234567890abcdef"))

    def test_address_analysis_is_cached(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return json_response({"labels": ["exchange"]})

        service = ArkhamIntelService(_http("arkham", handler), ArkhamSettings(api_key="k"))

        async def run():
            await service.analyze_address("0x1234567890abcdef")
            return await service.analyze_address("0x1234567890abcdef")

        assert asyncio.run(run()) == {"labels": ["exchange"]}
        assert calls == ["/address/analyze"]

    @pytest.mark.parametrize(
        ("operation", "args", "path", "params"),
        [
            (
                "get_transaction_insights",
                ("0xtx",),
                "/transaction/insights",
                {"tx_hash": "0xtx", "chain": "ethereum"},
            ),
            (
                "get_portfolio_insights",
                ("0xholder", "polygon"),
                "/portfolio/insights",
                {"address": "0xholder", "chain": "polygon"},
            ),
            (
                "get_address_labels",
                ("0xholder",),
                "/address/labels",
                {"address": "0xholder", "chain": "ethereum"},
            ),
        ],
    )
    def test_cached_lookups_send_expected_params(
        self, operation: str, args: tuple[str, ...], path: str, params: dict[str, str]
    ) -> None:
        recorder = Recorder({"ok": True})
        service = ArkhamIntelService(_http("arkham", recorder), ArkhamSettings(api_key="k"))

        async def run():
            await getattr(service, operation)(*args)
            return await getattr(service, operation)(*args)

        assert asyncio.run(run()) == {"ok": True}
        assert [r.url.path for r in recorder.requests] == [path]
        assert recorder.params() == params

    def test_transaction_insights_refetch_after_window(self, fake_clock: FakeClock) -> None:
        recorder = Recorder({"ok": True})
        http = _http("arkham", recorder, cache=TTLCache(clock=fake_clock))
        service = ArkhamIntelService(http, ArkhamSettings(api_key="k"))

        async def run():
            await service.get_transaction_insights("0xtx")
            fake_clock.advance(1799)
            await service.get_transaction_insights("0xtx")
            fake_clock.advance(2)
            await service.get_transaction_insights("0xtx")

        asyncio.run(run())

        assert len(recorder.requests) == 2

    @pytest.mark.parametrize(
        ("operation", "args"),
        [
            ("get_transaction_insights", ("0xtx",)),
            ("get_portfolio_insights", ("0xholder",)),
            ("get_address_labels", ("0xholder",)),
            ("search_entity", ("binance",)),
            ("update_market_sentiment", ()),
        ],
    )
    def test_missing_key_raises_before_any_request(self, operation: str, args: tuple[str, ...]) -> None:
        recorder = Recorder({"ok": True})
        service = ArkhamIntelService(_http("arkham", recorder), ArkhamSettings(api_key=None))

        with pytest.raises(ConfigurationAppError) as exc_info:
            asyncio.run(getattr(service, operation)(*args))

        assert exc_info.value.code == "arkham_api_key_missing"
        assert recorder.requests == []

    def test_search_entity_is_never_cached(self) -> None:
        recorder = Recorder({"entities": [{"name": "Binance"}]})
        service = ArkhamIntelService(_http("arkham", recorder), ArkhamSettings(api_key="k"))

        async def run():
            await service.search_entity("binance")
            return await service.search_entity("binance")

        assert asyncio.run(run())["entities"][0]["name"] == "Binance"
        assert [r.url.path for r in recorder.requests] == ["/entity/search", "/entity/search"]
        assert recorder.params() == {"query": "binance"}

    def test_update_market_sentiment_combines_both_feeds(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/market/sentiment":
                return json_response({"social_metrics": {"bullish_ratio": 0.8, "fear_greed_index": 70}})
            return json_response({"transactions": [{"value_usd": 60_000_000}, {"value_usd": 50_000_000}]})

        service = ArkhamIntelService(_http("arkham", handler), ArkhamSettings(api_key="k"))

        result = asyncio.run(service.update_market_sentiment())

        assert result["analysis"]["overall_sentiment"] == "bullish"
        assert result["analysis"]["whale_activity_level"] == "high"
        assert len(result["large_transactions"]["transactions"]) == 2
        large = next(r for r in requests if r.url.path == "/transactions/large")
        assert dict(large.url.params) == {"min_value_usd": "1000000", "chains": "ethereum,polygon", "limit": "50"}

    def test_sentiment_trends(self) -> None:
        analysis = analyze_sentiment_trends(
            {"social_metrics": {"bullish_ratio": 0.8, "fear_greed_index": 70}},
            {"transactions": [{"value_usd": 60_000_000}, {"value_usd": 50_000_000}]},
        )

        assert analysis["overall_sentiment"] == "bullish"
        assert analysis["whale_activity_level"] == "high"


class TestDeFi:
    def test_update_all_protocols(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert b"totalValueLockedUSD" in request.content
            return json_response({"data": {"protocol": {"totalValueLockedUSD": "5"}}})

        service = DeFiMonitoringService(_http("uniswap", handler, base_url="https://graph.test/uniswap"))

        updates = asyncio.run(service.update_all_protocols())

        assert updates["uniswap"]["protocol"]["totalValueLockedUSD"] == "5"
        assert set(updates) == {"uniswap", "aave", "compound"}

    def test_uniswap_failure_is_recorded_per_protocol(self) -> None:
        service = DeFiMonitoringService(_http("uniswap", lambda r: httpx.Response(502)))

        updates = asyncio.run(service.update_all_protocols())

        assert "error" in updates["uniswap"]
        assert "error" not in updates["aave"]
