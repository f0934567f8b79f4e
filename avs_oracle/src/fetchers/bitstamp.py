"""Bitstamp ticker.

Endpoint: https://www.bitstamp.net/api/v2/ticker/{base}{quote}/
"""

from .base import BaseFetcher, register_fetcher


@register_fetcher
class BitstampFetcher(BaseFetcher):
    """Last trade price from the Bitstamp public ticker.

    Only fiat and stablecoin quotes are listed.
    """

    name = "bitstamp"
    BASE_URL = "https://www.bitstamp.net/api/v2"

    SUPPORTED_QUOTES = frozenset({"usd", "eur", "gbp", "usdc", "usdt"})

    def pair_symbol(self, base: str, quote: str) -> str:
        return f"{base.lower()}{quote.lower()}"

    async def fetch_ticker(self, symbol: str) -> str:
        response = await self._get(f"{self.BASE_URL}/ticker/{symbol}/")
        return response.json()["last"]

    async def supports_pair(self, base: str, quote: str) -> bool:
        return quote.lower() in self.SUPPORTED_QUOTES
