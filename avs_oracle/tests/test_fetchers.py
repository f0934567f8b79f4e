"""Unit tests for the exchange price fetchers."""

import asyncio
from collections.abc import Callable

import httpx
import pytest

from avs_oracle.src.FixedPoint import to_fixed
from avs_oracle.src.fetchers import (
    BaseFetcher,
    BitstampFetcher,
    CoinbaseFetcher,
    KrakenFetcher,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)


def fetch_with(
    handler: Callable[[httpx.Request], httpx.Response],
    fetcher: BaseFetcher,
    base: str = "eth",
    quote: str = "usd",
) -> int | None:
    """Run a fetch against a mocked HTTP transport."""

    async def run() -> int | None:
        BaseFetcher.set_shared_client(
            httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        try:
            return await fetcher.fetch(base, quote)
        finally:
            await BaseFetcher.close_shared_client()

    return asyncio.run(run())


class TestRegistry:
    """Test the fetcher registry."""

    def test_available(self) -> None:
        assert get_available_fetchers() == ["bitstamp", "coinbase", "kraken"]

    def test_get_fetcher(self) -> None:
        fetcher = get_fetcher("kraken", timeout=3.0)
        assert isinstance(fetcher, KrakenFetcher)
        assert fetcher.timeout == 3.0

    def test_default_timeout(self) -> None:
        assert get_fetcher("coinbase").timeout == BaseFetcher.DEFAULT_TIMEOUT

    def test_unknown_fetcher(self) -> None:
        with pytest.raises(ValueError, match="Unknown fetcher 'nope'"):
            get_fetcher("nope")

    def test_register_requires_name(self) -> None:
        class Nameless(BaseFetcher):
            async def fetch_ticker(self, symbol: str) -> str:
                return "1"

        with pytest.raises(ValueError, match="name"):
            register_fetcher(Nameless)


class TestCoinbaseFetcher:
    """Test the Coinbase fetcher."""

    def test_parses_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/products/ETH-USD/ticker"
            return httpx.Response(200, json={"price": "2105.25", "size": "1"})

        assert fetch_with(handler, CoinbaseFetcher()) == to_fixed("2105.25")

    def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        assert fetch_with(handler, CoinbaseFetcher()) is None

    def test_missing_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "NotFound"})

        assert fetch_with(handler, CoinbaseFetcher()) is None

    def test_unparsable_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"price": "n/a"})

        assert fetch_with(handler, CoinbaseFetcher()) is None

    def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        assert fetch_with(handler, CoinbaseFetcher()) is None

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        assert fetch_with(handler, CoinbaseFetcher()) is None


class TestKrakenFetcher:
    """Test the Kraken fetcher."""

    def test_symbol_mapping(self) -> None:
        fetcher = KrakenFetcher()
        assert fetcher.pair_symbol("btc", "usd") == "XBTUSD"
        assert fetcher.pair_symbol("eth", "eur") == "ETHEUR"

    def test_parses_prefixed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["pair"] == "XBTUSD"
            return httpx.Response(
                200,
                json={"error": [], "result": {"XXBTZUSD": {"c": ["65000.1", "0.01"]}}},
            )

        price = fetch_with(handler, KrakenFetcher(), base="btc")
        assert price == to_fixed("65000.1")

    def test_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": ["EQuery:Unknown asset pair"]})

        assert fetch_with(handler, KrakenFetcher()) is None

    def test_empty_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": [], "result": {}})

        assert fetch_with(handler, KrakenFetcher()) is None


class TestBitstampFetcher:
    """Test the Bitstamp fetcher."""

    def test_parses_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v2/ticker/ethusd/"
            return httpx.Response(200, json={"last": "2104.9"})

        assert fetch_with(handler, BitstampFetcher()) == to_fixed("2104.9")

    def test_non_positive_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"last": "0"})

        assert fetch_with(handler, BitstampFetcher()) is None

    def test_supports_pair(self) -> None:
        fetcher = BitstampFetcher()
        assert asyncio.run(fetcher.supports_pair("eth", "usd")) is True
        assert asyncio.run(fetcher.supports_pair("eth", "btc")) is False
