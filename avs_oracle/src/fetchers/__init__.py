"""Exchange tickers an operator derives its attested price from.

Usage:
    from avs_oracle.src.fetchers import get_fetcher, get_available_fetchers

    get_available_fetchers()  # ['bitstamp', 'coinbase', 'kraken']

    fetcher = get_fetcher("kraken", timeout=5.0)
    price = await fetcher.fetch("btc", "usd")  # 18-decimal fixed point or None
"""

from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Importing the exchanges registers them
from .bitstamp import BitstampFetcher
from .coinbase import CoinbaseFetcher
from .kraken import KrakenFetcher

__all__ = [
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "FETCHER_REGISTRY",
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "BitstampFetcher",
    "CoinbaseFetcher",
    "KrakenFetcher",
]
