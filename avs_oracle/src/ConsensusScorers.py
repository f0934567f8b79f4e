"""Scorers feeding the consensus confidence level.

Each scorer maps one aspect of an attestation set to basis points:

    - OperatorCountScorer: saturating credit for the number of participants
    - ReliabilityScorer: plain mean of per-operator reliability
    - StakeDistributionScorer: how evenly stake is spread (Gini proxy)
    - ConvergenceScorer: how tightly prices cluster around the consensus

All scorers are stateless and integer-only.
"""

from __future__ import annotations

from collections.abc import Sequence

from .Attestation import Attestation
from .FixedPoint import BPS, clamp_bps, deviation_bps


class OperatorCountScorer:
    """Stepwise credit for the number of participating operators.

    .. code-block:: python

        >>> OperatorCountScorer().score(3)
        6000
    """

    # Index is the operator count; counts beyond the table saturate.
    STEPS = (0, 2000, 4000, 6000, 7500)
    SATURATED = BPS

    def score(self, count: int) -> int:
        if count < 0:
            return 0
        if count >= len(self.STEPS):
            return self.SATURATED
        return self.STEPS[count]


class ReliabilityScorer:
    """Unweighted mean reliability of the participating operators."""

    def score(self, attestations: Sequence[Attestation]) -> int:
        if not attestations:
            return 0
        return sum(a.reliability for a in attestations) // len(attestations)


class StakeDistributionScorer:
    """Scores stake decentralization as ``10000 - gini_bps``.

    The Gini proxy sums the absolute stake difference of every unordered pair
    and normalizes by ``n**2 * mean_stake``. The pairwise loop is quadratic in
    the operator count and its rounding must not change between evaluators.

    .. code-block:: python

        >>> scorer = StakeDistributionScorer()
        >>> scorer.score([a, b], total_stake=a.stake + b.stake)  # equal stakes
        10000
    """

    def score(self, attestations: Sequence[Attestation], total_stake: int) -> int:
        """Compute the stake distribution score.

        :param attestations: Attestations in the round.
        :param total_stake: Sum of their stakes.
        :returns: Score in basis points, 0 for fewer than two participants.
        """
        n = len(attestations)
        if n < 2 or total_stake == 0:
            return 0

        mean_stake = total_stake // n
        if mean_stake == 0:
            return 0

        stakes = [a.stake for a in attestations]
        sum_diffs = 0
        for i in range(n):
            for j in range(i + 1, n):
                sum_diffs += abs(stakes[i] - stakes[j])

        gini_bps = sum_diffs * BPS // (n * n * mean_stake)
        return clamp_bps(BPS - gini_bps)


class ConvergenceScorer:
    """Scores how tightly reported prices cluster around the consensus.

    The base score is ``10000 - avg_deviation``. A single report deviating
    more than 20% adds a penalty of half its excess, so one extreme report
    cannot hide behind many honest ones.
    """

    OUTLIER_THRESHOLD_BPS = 2000

    def score(self, attestations: Sequence[Attestation], consensus_price: int) -> int:
        """Compute the convergence score.

        :param attestations: Attestations in the round.
        :param consensus_price: Consensus price to measure deviations against.
        :returns: Score in basis points.
        """
        if not attestations or consensus_price == 0:
            return 0

        deviations = [deviation_bps(a.price, consensus_price) for a in attestations]
        avg_deviation = sum(deviations) // len(deviations)
        max_deviation = max(deviations)

        base_score = clamp_bps(BPS - avg_deviation)
        outlier_penalty = 0
        if max_deviation > self.OUTLIER_THRESHOLD_BPS:
            outlier_penalty = (max_deviation - self.OUTLIER_THRESHOLD_BPS) // 2

        return clamp_bps(base_score - outlier_penalty)
