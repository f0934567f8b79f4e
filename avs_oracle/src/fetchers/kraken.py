"""Kraken ticker.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={BASE}{QUOTE}
"""

from .base import BaseFetcher, FetcherError, register_fetcher


@register_fetcher
class KrakenFetcher(BaseFetcher):
    """Last trade price from the Kraken public ticker."""

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"

    # Kraken's asset codes where they differ from the usual ticker
    SYMBOL_MAP = {
        "btc": "XBT",
        "doge": "XDG",
    }

    def pair_symbol(self, base: str, quote: str) -> str:
        kraken_base = self.SYMBOL_MAP.get(base.lower(), base.upper())
        return f"{kraken_base}{quote.upper()}"

    async def fetch_ticker(self, symbol: str) -> str:
        """Return the last trade price of a Kraken pair.

        Kraken reports errors in-band with HTTP 200 and may key the result by
        its legacy X/Z-prefixed pair name (e.g., "XXBTZUSD").

        :raises FetcherError: If Kraken reports an error or no result.
        """
        response = await self._get(f"{self.BASE_URL}/Ticker", params={"pair": symbol})
        data = response.json()

        if data.get("error"):
            raise FetcherError(f"API error: {data['error']}")
        result = data.get("result")
        if not result:
            raise FetcherError("empty result")

        pair_data = result.get(symbol) or next(iter(result.values()))
        # 'c' is the last trade closed array: [price, lot volume]
        return pair_data["c"][0]
