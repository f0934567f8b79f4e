"""OutlierFilter: Median-based attestation filtering.

Attestations whose price deviates from the median by more than
``max_deviation_bps`` are dropped before they reach the consensus engine.
With two or fewer attestations there is no way to tell which one is the
outlier, so the input passes through unchanged.

.. code-block:: python

    >>> median_price([2100, 2110])
    2105
    >>> kept = OutlierFilter().filter(attestations, max_deviation_bps=1000)
"""

from __future__ import annotations

from collections.abc import Sequence

from .Attestation import Attestation
from .errors import InputError
from .FixedPoint import deviation_bps

# Below this many attestations nothing is filtered.
MIN_FILTERABLE = 3


def median_price(prices: Sequence[int]) -> int:
    """Integer median of a list of prices.

    Even-length lists average the two middle values with floor division.

    :param prices: Prices to take the median of.
    :returns: Median price.
    :raises InputError: If prices is empty.
    """
    if not prices:
        raise InputError("Cannot take the median of no prices")
    ordered = sorted(prices)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) // 2
    return ordered[mid]


class OutlierFilter:
    """Strips attestations that sit too far from the median price."""

    def partition(
        self,
        attestations: Sequence[Attestation],
        max_deviation_bps: int,
    ) -> tuple[list[Attestation], list[Attestation]]:
        """Split attestations into ``(kept, dropped)``.

        Both lists preserve input order.

        :param attestations: Attestations to filter.
        :param max_deviation_bps: Largest deviation from the median to keep.
        :returns: Tuple of kept and dropped attestations.
        """
        if len(attestations) < MIN_FILTERABLE:
            return list(attestations), []

        median = median_price([a.price for a in attestations])

        kept: list[Attestation] = []
        dropped: list[Attestation] = []
        for attestation in attestations:
            if deviation_bps(attestation.price, median) <= max_deviation_bps:
                kept.append(attestation)
            else:
                dropped.append(attestation)
        return kept, dropped

    def filter(
        self,
        attestations: Sequence[Attestation],
        max_deviation_bps: int,
    ) -> list[Attestation]:
        """Return the attestations within ``max_deviation_bps`` of the median."""
        kept, _ = self.partition(attestations, max_deviation_bps)
        return kept
