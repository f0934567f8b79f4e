"""Coinbase Exchange ticker.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
"""

from .base import BaseFetcher, register_fetcher


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Last trade price from the Coinbase Exchange public ticker."""

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    def pair_symbol(self, base: str, quote: str) -> str:
        return f"{base.upper()}-{quote.upper()}"

    async def fetch_ticker(self, symbol: str) -> str:
        response = await self._get(f"{self.BASE_URL}/products/{symbol}/ticker")
        return response.json()["price"]
