"""ConsensusEngine: Stake- and reliability-weighted price consensus.

Algorithm:
    1. Reject empty input and thresholds below simple majority (5100 bps)
    2. Sum stake; a zero total yields an empty, non-consensus result
    3. Weight each price by ``stake * reliability / 10000``; fall back to pure
       stake weighting when every reliability weight is zero
    4. Score convergence, stake distribution, operator count and reliability
    5. Blend the scores 40/30/20/10 into a confidence level
    6. Consensus is reached when confidence >= threshold

.. code-block:: python

    >>> engine = ConsensusEngine()
    >>> result = engine.compute_consensus(attestations, threshold_bps=6600)
    >>> result.has_consensus
    True
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .Attestation import Attestation
from .ConsensusScorers import (
    ConvergenceScorer,
    OperatorCountScorer,
    ReliabilityScorer,
    StakeDistributionScorer,
)
from .errors import InputError
from .FixedPoint import BPS, clamp_bps

# Lowest accepted consensus threshold (simple majority).
MIN_CONSENSUS_THRESHOLD_BPS = 5100

# Share of the confidence level contributed by each score, in basis points.
CONVERGENCE_WEIGHT_BPS = 4000
STAKE_DISTRIBUTION_WEIGHT_BPS = 3000
OPERATOR_COUNT_WEIGHT_BPS = 2000
RELIABILITY_WEIGHT_BPS = 1000


@dataclass(frozen=True)
class ConsensusResult:
    """Outcome of one consensus computation.

    :ivar consensus_price: Weighted price, 18-decimal fixed point.
    :ivar total_stake: Stake of every attestation in the round.
    :ivar participating_stake: Stake that carried weight in the price.
    :ivar confidence_level: Blended confidence in basis points.
    :ivar convergence_score: Price clustering score in basis points.
    :ivar has_consensus: Whether confidence met the threshold.
    """

    consensus_price: int
    total_stake: int
    participating_stake: int
    confidence_level: int
    convergence_score: int
    has_consensus: bool

    @classmethod
    def empty(cls) -> ConsensusResult:
        """Result used when there is no stake to weight prices with."""
        return cls(
            consensus_price=0,
            total_stake=0,
            participating_stake=0,
            confidence_level=0,
            convergence_score=0,
            has_consensus=False,
        )


class ConsensusEngine:
    """Combines attestations into a consensus price and confidence level.

    The engine holds only its scorers and is safe to share across callers.

    :ivar convergence_scorer: Scores price clustering.
    :ivar distribution_scorer: Scores stake decentralization.
    :ivar count_scorer: Scores participant count.
    :ivar reliability_scorer: Scores mean reliability.
    """

    def __init__(self) -> None:
        self.convergence_scorer = ConvergenceScorer()
        self.distribution_scorer = StakeDistributionScorer()
        self.count_scorer = OperatorCountScorer()
        self.reliability_scorer = ReliabilityScorer()

    def compute_consensus(
        self,
        attestations: Sequence[Attestation],
        threshold_bps: int,
    ) -> ConsensusResult:
        """Compute the consensus for a set of attestations.

        :param attestations: Authenticated attestations for one subject.
        :param threshold_bps: Confidence required for consensus (>= 5100).
        :returns: ConsensusResult for the round.
        :raises InputError: If attestations is empty or the threshold is
            below simple majority.
        """
        if not attestations:
            raise InputError("No attestations provided")
        if threshold_bps < MIN_CONSENSUS_THRESHOLD_BPS:
            raise InputError(
                f"Consensus threshold must be at least {MIN_CONSENSUS_THRESHOLD_BPS} "
                f"bps, got {threshold_bps}"
            )

        total_stake = sum(a.stake for a in attestations)
        if total_stake == 0:
            return ConsensusResult.empty()

        consensus_price, participating_stake = self._weighted_price(
            attestations, total_stake
        )

        convergence = self.convergence_scorer.score(attestations, consensus_price)
        distribution = self.distribution_scorer.score(attestations, total_stake)
        count = self.count_scorer.score(len(attestations))
        reliability = self.reliability_scorer.score(attestations)

        confidence = (
            convergence * CONVERGENCE_WEIGHT_BPS // BPS
            + distribution * STAKE_DISTRIBUTION_WEIGHT_BPS // BPS
            + count * OPERATOR_COUNT_WEIGHT_BPS // BPS
            + reliability * RELIABILITY_WEIGHT_BPS // BPS
        )
        confidence = clamp_bps(confidence)

        return ConsensusResult(
            consensus_price=consensus_price,
            total_stake=total_stake,
            participating_stake=participating_stake,
            confidence_level=confidence,
            convergence_score=convergence,
            has_consensus=confidence >= threshold_bps,
        )

    @staticmethod
    def _weighted_price(
        attestations: Sequence[Attestation], total_stake: int
    ) -> tuple[int, int]:
        """Return ``(price, participating_stake)`` for a non-zero stake set.

        Reliability refines stake weighting; only when every reliability
        weight is zero does the price fall back to pure stake weighting.
        """
        weights = [a.reliability_weight for a in attestations]
        total_weight = sum(weights)

        if total_weight > 0:
            pairs = list(zip(attestations, weights, strict=True))
            weighted_sum = sum(a.price * w for a, w in pairs)
            participating = sum(a.stake for a, w in pairs if w > 0)
            return weighted_sum // total_weight, participating

        weighted_sum = sum(a.price * a.stake for a in attestations)
        return weighted_sum // total_stake, total_stake
