"""ManipulationDetector: Volatility analysis over a price history.

Runs independently of any single consensus round. Each step between two
consecutive prices is measured in basis points against the earlier price;
a high average step or a single very large step flags manipulation.

.. code-block:: python

    >>> ManipulationDetector().detect([2000, 2000, 4000], [1, 2, 3])
    (True, 7500)
"""

from __future__ import annotations

from collections.abc import Sequence

from .errors import InputError
from .FixedPoint import deviation_bps


class ManipulationDetector:
    """Flags suspicious volatility in a price series.

    :cvar MIN_POINTS: Fewest data points accepted.
    :cvar AVG_VOLATILITY_LIMIT_BPS: Average step above which prices are suspect.
    :cvar MAX_STEP_LIMIT_BPS: Single step above which prices are suspect.
    """

    MIN_POINTS = 3
    AVG_VOLATILITY_LIMIT_BPS = 2000
    MAX_STEP_LIMIT_BPS = 5000

    def detect(
        self,
        prices: Sequence[int],
        timestamps: Sequence[int],
    ) -> tuple[bool, int]:
        """Analyze a price series for manipulation.

        :param prices: Prices in chronological order.
        :param timestamps: Observation times matching ``prices``.
        :returns: Tuple of (is_manipulation, suspicion_level in bps).
        :raises InputError: If lengths differ or fewer than 3 points.
        """
        if len(prices) != len(timestamps):
            raise InputError(
                f"prices and timestamps differ in length "
                f"({len(prices)} != {len(timestamps)})"
            )
        if len(prices) < self.MIN_POINTS:
            raise InputError(
                f"At least {self.MIN_POINTS} data points required, got {len(prices)}"
            )

        steps = [
            deviation_bps(prices[i], prices[i - 1]) for i in range(1, len(prices))
        ]
        avg_volatility = sum(steps) // len(steps)
        max_deviation = max(steps)

        suspicion_level = (avg_volatility + max_deviation) // 2
        is_manipulation = (
            avg_volatility > self.AVG_VOLATILITY_LIMIT_BPS
            or max_deviation > self.MAX_STEP_LIMIT_BPS
        )
        return is_manipulation, suspicion_level
