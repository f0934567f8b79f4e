"""MultiSourceValidator: Weighted combination of independent price sources.

Used by an operator to turn several exchange prices into the single price it
attests to, together with a consistency score describing how well the
sources agree.

.. code-block:: python

    >>> MultiSourceValidator().combine([100, 100, 100], [1, 1, 1])
    (100, 10000)
"""

from __future__ import annotations

from collections.abc import Sequence

from .errors import InputError
from .FixedPoint import BPS, clamp_bps, deviation_bps


class MultiSourceValidator:
    """Combines source prices into a weighted price and consistency score."""

    def combine(
        self,
        sources: Sequence[int],
        weights: Sequence[int],
    ) -> tuple[int, int]:
        """Weighted price and consistency of a set of source prices.

        Each source's deviation from the weighted price is itself weighted
        before averaging, so a heavily weighted source that disagrees hurts
        consistency more than a lightly weighted one.

        :param sources: Source prices (fixed point).
        :param weights: Non-negative weight per source.
        :returns: Tuple of (weighted_price, consistency in bps). Both are 0
            when the total weight is 0.
        :raises InputError: If the lists are empty, differ in length or a
            weight is negative.
        """
        if not sources or not weights:
            raise InputError("sources and weights must not be empty")
        if len(sources) != len(weights):
            raise InputError(
                f"sources and weights differ in length "
                f"({len(sources)} != {len(weights)})"
            )
        if any(w < 0 for w in weights):
            raise InputError("weights must be non-negative")

        total_weight = sum(weights)
        if total_weight == 0:
            return 0, 0

        pairs = list(zip(sources, weights, strict=True))
        weighted_price = sum(p * w for p, w in pairs) // total_weight

        weighted_deviation = (
            sum(deviation_bps(p, weighted_price) * w for p, w in pairs) // total_weight
        )
        consistency = clamp_bps(BPS - weighted_deviation)
        return weighted_price, consistency
