"""PriceAttestor: Derives an operator's attested price from exchange sources.

Architecture:
    - Fetch the pair from every configured source concurrently, each under
      its own timeout
    - Combine the prices with MultiSourceValidator (per-source weights)
    - Refuse to attest when too few sources answered or they disagree
    - Commit to the source prices with a keccak source hash
    - Emit a price_attestation task payload for the oracle performer
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from web3 import Web3

from .FixedPoint import format_price, from_fixed
from .MultiSourceValidator import MultiSourceValidator

if TYPE_CHECKING:
    from .fetchers import BaseFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceObservation:
    """A combined multi-source price ready to be attested.

    :ivar base: Base currency symbol.
    :ivar quote: Quote currency symbol.
    :ivar price: Weighted price (fixed point).
    :ivar consistency: Source agreement in basis points.
    :ivar sources: Prices used, by source name.
    :ivar failed: Sources that returned no price.
    :ivar source_hash: keccak256 commitment to the source prices.
    :ivar observed_at: Unix seconds of the observation.
    """

    base: str
    quote: str
    price: int
    consistency: int
    sources: dict[str, int]
    failed: list[str]
    source_hash: str
    observed_at: int


def compute_source_hash(prices: dict[str, int]) -> str:
    """Commit to a set of source prices.

    The preimage is one ``source=price`` line per source, sorted by source.

    :param prices: Fixed-point price by source name.
    :returns: 0x-prefixed keccak256 hash.
    """
    preimage = "\n".join(f"{source}={prices[source]}" for source in sorted(prices))
    return Web3.to_hex(Web3.keccak(text=preimage))


class PriceAttestor:
    """Fetches, combines and commits to exchange prices for one operator.

    :ivar fetchers: Fetcher instance by source name.
    :ivar weights: Combination weight by source name (default 1).
    :ivar fetch_timeout: Per-source timeout in seconds.
    :ivar min_sources: Fewest answering sources required to attest.
    :ivar min_consistency_bps: Lowest acceptable source agreement.
    """

    DEFAULT_MIN_CONSISTENCY_BPS = 9500

    def __init__(
        self,
        fetchers: dict[str, BaseFetcher],
        weights: dict[str, int] | None = None,
        fetch_timeout: float = 10.0,
        min_sources: int = 2,
        min_consistency_bps: int = DEFAULT_MIN_CONSISTENCY_BPS,
    ) -> None:
        """Initialize the attestor.

        :param fetchers: Fetcher instance by source name.
        :param weights: Optional weight per source; missing sources weigh 1.
        :param fetch_timeout: Timeout for each source fetch (default: 10.0).
        :param min_sources: Fewest answering sources to attest (default: 2).
        :param min_consistency_bps: Lowest acceptable consistency (default: 9500).
        :raises ValueError: If parameters are invalid.
        """
        if not fetchers:
            raise ValueError("At least one fetcher is required")
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if weights and any(w < 0 for w in weights.values()):
            raise ValueError("weights must be non-negative")

        self.fetchers = fetchers
        self.weights = weights or {}
        self.fetch_timeout = fetch_timeout
        self.min_sources = min_sources
        self.min_consistency_bps = min_consistency_bps
        self.combiner = MultiSourceValidator()

    async def observe(self, base: str, quote: str) -> PriceObservation | None:
        """Fetch and combine the current price of a pair.

        :param base: Base currency symbol.
        :param quote: Quote currency symbol.
        :returns: PriceObservation, or None if the sources are insufficient
            or inconsistent.
        """
        names: list[str] = []
        for name, fetcher in self.fetchers.items():
            if await fetcher.supports_pair(base, quote):
                names.append(name)
            else:
                logger.debug(f"[{name}] does not list {base}/{quote}")

        results = await asyncio.gather(
            *(self._fetch_single(self.fetchers[n], base, quote) for n in names)
        )

        prices: dict[str, int] = {}
        failed: list[str] = []
        for name, price in zip(names, results, strict=True):
            if price is None:
                failed.append(name)
            else:
                prices[name] = price

        if len(prices) < self.min_sources:
            logger.warning(
                f"{base}/{quote}: only {len(prices)} of {len(names)} sources "
                f"answered (need {self.min_sources}), failed: {failed}"
            )
            return None

        sources = list(prices)
        price, consistency = self.combiner.combine(
            [prices[s] for s in sources],
            [self.weights.get(s, 1) for s in sources],
        )

        breakdown = ", ".join(f"{s}=${format_price(p)}" for s, p in prices.items())
        if price == 0 or consistency < self.min_consistency_bps:
            logger.warning(
                f"{base}/{quote}: sources disagree (consistency={consistency} bps, "
                f"min {self.min_consistency_bps}): [{breakdown}]"
            )
            return None

        logger.info(
            f"{base}/{quote}: ${format_price(price)} "
            f"(consistency={consistency} bps of [{breakdown}])"
        )
        return PriceObservation(
            base=base,
            quote=quote,
            price=price,
            consistency=consistency,
            sources=prices,
            failed=failed,
            source_hash=compute_source_hash(prices),
            observed_at=int(time.time()),
        )

    @staticmethod
    def build_task_payload(
        observation: PriceObservation,
        pool_id: str,
        operator: str,
        stake: int | None = None,
    ) -> dict[str, Any]:
        """Build a price_attestation task payload from an observation.

        :param observation: Combined price to attest.
        :param pool_id: Pool the attestation is for.
        :param operator: Attesting operator's identifier.
        :param stake: Optional stake to report with the attestation.
        :returns: JSON-ready task payload.
        """
        parameters: dict[str, Any] = {
            "pool_id": pool_id,
            "operator": operator,
            "price": str(from_fixed(observation.price)),
            "source_hash": observation.source_hash,
            "timestamp": observation.observed_at,
        }
        if stake is not None:
            parameters["stake"] = str(stake)
        return {"type": "price_attestation", "parameters": parameters}

    async def _fetch_single(
        self,
        fetcher: BaseFetcher,
        base: str,
        quote: str,
    ) -> int | None:
        """Fetch a single source with timeout.

        :returns: Price or None on failure.
        """
        try:
            return await asyncio.wait_for(
                fetcher.fetch(base, quote),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{fetcher.name}] Timeout fetching {base}/{quote}")
            return None
        except Exception as e:
            logger.warning(f"[{fetcher.name}] Error fetching {base}/{quote}: {e}")
            return None
