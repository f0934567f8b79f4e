"""PriceValidator: Per-action price gate against a consensus snapshot.

A proposed price passes when the consensus behind it is confident enough,
fresh enough, and close enough to the proposed price. Failing a check is a
normal outcome reported through ValidationResult, never an exception.

Checks run in fixed order and the first failure wins:
    1. Confidence below the pool's consensus threshold
    2. Consensus older than the allowed staleness
    3. No consensus price to compare against
    4. Deviation from the consensus price above the limit
"""

from __future__ import annotations

from dataclasses import dataclass

from .ConsensusEngine import MIN_CONSENSUS_THRESHOLD_BPS
from .errors import InputError
from .FixedPoint import BPS, deviation_bps

REASON_LOW_CONFIDENCE = "Low confidence"
REASON_STALE = "Stale price data"
REASON_DEVIATION = "Price deviation too high"
REASON_INSUFFICIENT_STAKE = "Insufficient stake"


@dataclass(frozen=True)
class OracleConfig:
    """Per-pool oracle configuration, read-only to the core.

    :ivar enabled: Whether the pool is gated by the oracle at all.
    :ivar max_price_deviation_bps: Largest accepted deviation from consensus.
    :ivar min_stake_required: Stake the consensus must carry to gate actions.
    :ivar consensus_threshold_bps: Confidence required for consensus.
    :ivar max_staleness_seconds: Oldest consensus still accepted.
    """

    enabled: bool = True
    max_price_deviation_bps: int = 500
    min_stake_required: int = 0
    consensus_threshold_bps: int = 6600
    max_staleness_seconds: int = 300

    def __post_init__(self) -> None:
        if not MIN_CONSENSUS_THRESHOLD_BPS <= self.consensus_threshold_bps <= BPS:
            raise InputError(
                f"consensus_threshold_bps must be within "
                f"[{MIN_CONSENSUS_THRESHOLD_BPS}, {BPS}], "
                f"got {self.consensus_threshold_bps}"
            )
        if not 0 < self.max_price_deviation_bps <= BPS:
            raise InputError(
                f"max_price_deviation_bps must be within [1, {BPS}], "
                f"got {self.max_price_deviation_bps}"
            )
        if self.min_stake_required < 0:
            raise InputError("min_stake_required must be non-negative")
        if self.max_staleness_seconds < 0:
            raise InputError("max_staleness_seconds must be non-negative")

    @property
    def min_confidence(self) -> int:
        """Confidence a consensus needs before it can gate an action."""
        return self.consensus_threshold_bps

    @property
    def max_staleness(self) -> int:
        return self.max_staleness_seconds

    @property
    def max_deviation_bps(self) -> int:
        return self.max_price_deviation_bps


@dataclass(frozen=True)
class ValidationThresholds:
    """Bare thresholds for validating a price outside any pool config.

    :ivar min_confidence: Lowest accepted confidence in bps.
    :ivar max_staleness: Oldest accepted consensus in seconds.
    :ivar max_deviation_bps: Largest accepted deviation from consensus.
    """

    min_confidence: int
    max_staleness: int
    max_deviation_bps: int

    def __post_init__(self) -> None:
        if not 0 <= self.min_confidence <= BPS:
            raise InputError(f"min_confidence must be within [0, {BPS}]")
        if self.max_staleness < 0:
            raise InputError("max_staleness must be non-negative")
        if self.max_deviation_bps < 0:
            raise InputError("max_deviation_bps must be non-negative")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one proposed price.

    :ivar is_valid: Whether the action may proceed.
    :ivar deviation_bps: Measured deviation from consensus (0 if not measured).
    :ivar reason: Empty on success, otherwise the failed check.
    """

    is_valid: bool
    deviation_bps: int = 0
    reason: str = ""

    @classmethod
    def rejected(cls, reason: str, deviation: int = 0) -> ValidationResult:
        return cls(is_valid=False, deviation_bps=deviation, reason=reason)


class PriceValidator:
    """Validates a proposed price against a consensus snapshot."""

    def validate(
        self,
        current_price: int,
        consensus_price: int,
        confidence_level: int,
        observed_at: int,
        now: int,
        config: OracleConfig | ValidationThresholds,
    ) -> ValidationResult:
        """Validate a proposed price.

        :param current_price: Price implied by the action.
        :param consensus_price: Latest consensus price.
        :param confidence_level: Confidence of that consensus in bps.
        :param observed_at: Unix seconds when the consensus was computed.
        :param now: Current unix seconds.
        :param config: Pool configuration or bare thresholds.
        :returns: ValidationResult, invalid with a reason on the first failure.
        """
        if confidence_level < config.min_confidence:
            return ValidationResult.rejected(REASON_LOW_CONFIDENCE)

        if now - observed_at > config.max_staleness:
            return ValidationResult.rejected(REASON_STALE)

        if consensus_price == 0:
            return ValidationResult.rejected(REASON_INSUFFICIENT_STAKE)

        deviation = deviation_bps(current_price, consensus_price)
        if deviation > config.max_deviation_bps:
            return ValidationResult.rejected(REASON_DEVIATION, deviation)

        return ValidationResult(is_valid=True, deviation_bps=deviation)
