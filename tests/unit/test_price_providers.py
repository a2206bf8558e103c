"""
Unit Tests for price oracles

Alpha Vantage parsing and fail-soft behaviour (httpx mock transport),
TTL cache, yfinance wrapper, manual store, provider chain and factory
"""

import httpx
import pandas as pd
import pytest

from portfolio_tracker.config import Settings
from portfolio_tracker.infrastructure.market_data.alpha_vantage_provider import AlphaVantageProvider
from portfolio_tracker.infrastructure.market_data.manual_price_store import ManualPriceStore, PriceSnapshotRegistry
from portfolio_tracker.infrastructure.market_data.price_cache import PriceCache
from portfolio_tracker.infrastructure.market_data.provider_chain import ChainedPriceOracle, NamedProvider
from portfolio_tracker.infrastructure.market_data.provider_factory import get_price_oracle
from portfolio_tracker.infrastructure.market_data.yfinance_provider import YFinanceProvider


def _alpha_vantage(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AlphaVantageProvider(api_key="demo", client=client, request_delay_seconds=0, **kwargs)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class StubOracle:
    def __init__(self, prices=None, error=None):
        self.prices = prices or {}
        self.error = error
        self.calls = []

    async def get_price(self, symbol):
        self.calls.append([symbol])
        if self.error:
            raise self.error
        return self.prices.get(symbol)

    async def get_prices(self, symbols):
        self.calls.append(list(symbols))
        if self.error:
            raise self.error
        return {s: self.prices[s] for s in symbols if s in self.prices}


class TestAlphaVantage:

    @pytest.mark.asyncio
    async def test_parses_global_quote(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, json={"Global Quote": {"01. symbol": "AAPL", "05. price": "189.8400"}})

        provider = _alpha_vantage(handler)
        assert await provider.get_price("aapl") == pytest.approx(189.84)
        assert seen[0]["function"] == "GLOBAL_QUOTE"
        assert seen[0]["symbol"] == "AAPL"
        assert seen[0]["apikey"] == "demo"

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"Global Quote": {"05. price": "10.0"}})

        provider = _alpha_vantage(handler)
        await provider.get_price("MSFT")
        await provider.get_price("MSFT")
        assert len(calls) == 1

        provider.clear_cache()
        await provider.get_price("MSFT")
        assert len(calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"Note": "rate limited"}),
        httpx.Response(200, json={"Global Quote": {}}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"Global Quote": {"05. price": "abc"}}),
    ])
    async def test_failures_are_misses(self, response):
        provider = _alpha_vantage(lambda request: response)
        assert await provider.get_price("AAPL") is None

    @pytest.mark.asyncio
    async def test_network_error_is_a_miss(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        provider = _alpha_vantage(handler)
        assert await provider.get_prices(["AAPL", "MSFT"]) == {}

    @pytest.mark.asyncio
    async def test_no_api_key_makes_no_request(self):
        def handler(request):
            raise AssertionError("unexpected request")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = AlphaVantageProvider(api_key="  ", client=client)
        assert await provider.get_price("AAPL") is None

    @pytest.mark.asyncio
    async def test_get_prices_omits_misses(self):
        def handler(request):
            if request.url.params["symbol"] == "AAPL":
                return httpx.Response(200, json={"Global Quote": {"05. price": "100"}})
            return httpx.Response(200, json={"Global Quote": {}})

        provider = _alpha_vantage(handler)
        assert await provider.get_prices(["aapl", "ZZZZ"]) == {"AAPL": 100.0}


def test_price_cache_expiry():
    clock = FakeClock()
    cache = PriceCache(ttl_seconds=60, clock=clock)
    cache.set("AAPL", 10.0)

    clock.now += 59
    assert cache.get("AAPL") == 10.0
    clock.now += 1
    assert cache.get("AAPL") is None


class TestYFinance:

    @pytest.mark.asyncio
    async def test_last_close(self, monkeypatch):
        provider = YFinanceProvider()

        async def fake_history(ticker, **kwargs):
            return pd.DataFrame({"Close": [101.0, 102.5, None]})

        monkeypatch.setattr(provider, "_history", fake_history)
        assert await provider.get_prices(["aapl"]) == {"AAPL": 102.5}

    @pytest.mark.asyncio
    async def test_errors_are_misses(self, monkeypatch):
        provider = YFinanceProvider()

        async def broken_history(ticker, **kwargs):
            raise RuntimeError("yahoo down")

        monkeypatch.setattr(provider, "_history", broken_history)
        assert await provider.get_price("AAPL") is None

    def test_symbol_overrides(self, monkeypatch):
        monkeypatch.setenv("YF_SYMBOL_OVERRIDES", "brk.b=BRK-B, bad ,SAP=SAP.DE")
        provider = YFinanceProvider()
        assert provider.symbol_mapping == {"BRK.B": "BRK-B", "SAP": "SAP.DE"}


class TestManualPriceStore:

    @pytest.mark.asyncio
    async def test_update_and_read(self):
        store = ManualPriceStore()
        store.update_price(" aapl ", 150.0)
        store.update_price("ZERO", 0.0)

        assert store.get_quote("AAPL").price == 150.0
        assert await store.get_price("aapl") == 150.0
        assert await store.get_price("ZERO") is None
        assert await store.get_prices(["aapl", "msft"]) == {"AAPL": 150.0}
        assert store.snapshot() == {"AAPL": 150.0, "ZERO": 0.0}

        store.clear()
        assert store.snapshot() == {}


class TestPriceSnapshotRegistry:

    def test_get_does_not_register(self):
        registry = PriceSnapshotRegistry(max_users=2)
        assert registry.get("alice") is None
        assert len(registry) == 0

    def test_least_recently_used_evicted(self):
        registry = PriceSnapshotRegistry(max_users=2)
        alice, bob, carol = ManualPriceStore(), ManualPriceStore(), ManualPriceStore()
        registry.put("alice", alice)
        registry.put("bob", bob)

        assert registry.get("alice") is alice
        registry.put("carol", carol)

        assert len(registry) == 2
        assert "bob" not in registry
        assert registry.get("alice") is alice
        assert registry.get("carol") is carol

        registry.clear()
        assert len(registry) == 0


class TestChain:

    @pytest.mark.asyncio
    async def test_fallback_fills_missing_symbols(self):
        primary = StubOracle({"AAPL": 100.0})
        fallback = StubOracle({"AAPL": 1.0, "MSFT": 200.0})
        chain = ChainedPriceOracle([NamedProvider("primary", primary), NamedProvider("fallback", fallback)])

        prices = await chain.get_prices(["aapl", "msft"])

        assert prices == {"AAPL": 100.0, "MSFT": 200.0}
        assert fallback.calls == [["MSFT"]]
        assert chain.get_last_sources() == {"AAPL": "primary", "MSFT": "fallback"}

    @pytest.mark.asyncio
    async def test_failing_provider_is_skipped(self):
        chain = ChainedPriceOracle([
            NamedProvider("broken", StubOracle(error=RuntimeError("down"))),
            NamedProvider("manual", StubOracle({"AAPL": 5.0})),
        ])

        assert await chain.get_price("AAPL") == 5.0
        assert await chain.get_prices(["AAPL"]) == {"AAPL": 5.0}
        assert await chain.get_price("NONE") is None


class TestFactory:

    def test_manual_only(self):
        oracle = get_price_oracle(Settings(MARKET_DATA_PROVIDER="manual", MARKET_DATA_FALLBACK_PROVIDERS=""))
        assert isinstance(oracle, ManualPriceStore)

    def test_missing_key_falls_back(self):
        config = Settings(
            MARKET_DATA_PROVIDER="alphavantage",
            ALPHA_VANTAGE_API_KEY=None,
            MARKET_DATA_FALLBACK_PROVIDERS="manual",
        )
        assert isinstance(get_price_oracle(config), ManualPriceStore)

    def test_chain_built_for_several_providers(self):
        config = Settings(
            MARKET_DATA_PROVIDER="alphavantage",
            ALPHA_VANTAGE_API_KEY="key",
            MARKET_DATA_FALLBACK_PROVIDERS="yfinance, manual, alphavantage",
        )
        oracle = get_price_oracle(config)

        assert isinstance(oracle, ChainedPriceOracle)
        assert [p.name for p in oracle.providers] == ["alphavantage", "yfinance", "manual"]

    def test_nothing_buildable(self):
        config = Settings(MARKET_DATA_PROVIDER="bloomberg", MARKET_DATA_FALLBACK_PROVIDERS="")
        assert get_price_oracle(config) is None
