"""Exchange ticker interface and shared HTTP client management.

An operator attests to a price it derives from several exchanges. Each
exchange fetcher only knows how to name a pair and where the last trade price
sits in the exchange's ticker response; BaseFetcher.fetch() turns that raw
decimal string into an 18-decimal fixed-point price (never through a float)
and converts every transport or response failure into ``None``.

A shared httpx.AsyncClient is used across all fetchers to avoid connection
overhead.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"

        async def fetch_ticker(self, symbol: str) -> str | None:
            response = await self._get(f"https://api.example.com/ticker/{symbol}")
            return response.json()["last"]
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..errors import InputError
from ..FixedPoint import to_fixed

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when an HTTP request returns a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFetcher(ABC):
    """Abstract base class for exchange ticker fetchers.

    Subclasses must implement:
        - name: Class variable identifying the exchange (e.g., "coinbase")
        - fetch_ticker(): Async method returning the raw last trade price

    and may override pair_symbol() and supports_pair().

    :cvar name: Unique identifier for this fetcher.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar timeout: Request timeout in seconds.
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float | None = None):
        """Initialize the fetcher.

        :param timeout: Request timeout in seconds (default: 10).
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
            BaseFetcher._shared_client = client
        return client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient) -> None:
        """Replace the shared HTTP client (e.g., with a mocked transport)."""
        BaseFetcher._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    def pair_symbol(self, base: str, quote: str) -> str:
        """The exchange's symbol for a pair (default: ``ETHUSD``)."""
        return f"{base.upper()}{quote.upper()}"

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Any:
        """Return the raw last trade price for an exchange symbol.

        :param symbol: Exchange symbol from pair_symbol().
        :returns: Decimal string (or number) as reported by the exchange.
        :raises FetcherError: On transport failures or exchange-side errors.
        :raises KeyError: If the response carries no price.
        """

    async def fetch(self, base: str, quote: str) -> int | None:
        """Fetch the current price for a trading pair.

        :param base: Base currency symbol (e.g., "eth").
        :param quote: Quote currency symbol (e.g., "usd").
        :returns: Positive fixed-point price, or None if the fetch failed.
        """
        symbol = self.pair_symbol(base, quote)
        try:
            raw = await self.fetch_ticker(symbol)
        except FetcherError as e:
            logger.warning(f"[{self.name}] Failed to fetch {symbol}: {e}")
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"[{self.name}] Unexpected response for {symbol}: {e!r}")
            return None

        if raw is None:
            return None
        return self._parse_price(raw)

    async def supports_pair(self, base: str, quote: str) -> bool:
        """Whether the exchange lists the pair (default: always)."""
        return True

    def _parse_price(self, raw: Any) -> int | None:
        try:
            price = to_fixed(raw)
        except InputError:
            logger.warning(f"[{self.name}] Unparsable price: {raw!r}")
            return None
        if price <= 0:
            logger.warning(f"[{self.name}] Non-positive price: {raw!r}")
            return None
        return price

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :raises ValueError: If fetcher has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(name: str, timeout: float | None = None) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "coinbase", "kraken").
    :param timeout: Optional request timeout in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](timeout=timeout)


def get_available_fetchers() -> list[str]:
    return sorted(FETCHER_REGISTRY)
