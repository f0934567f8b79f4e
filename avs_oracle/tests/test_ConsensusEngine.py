"""Unit tests for ConsensusEngine."""

import pytest

from avs_oracle.src.Attestation import Attestation
from avs_oracle.src.ConsensusEngine import ConsensusEngine, ConsensusResult
from avs_oracle.src.errors import InputError
from avs_oracle.src.FixedPoint import PRECISION, to_fixed

STAKE = 10 * PRECISION


def make_attestation(
    operator: str,
    price: int,
    stake: int = STAKE,
    reliability: int = 9000,
) -> Attestation:
    return Attestation(
        operator_id=operator,
        price=price,
        stake=stake,
        timestamp=1_700_000_000,
        reliability=reliability,
    )


def three_honest_operators() -> list[Attestation]:
    return [
        make_attestation("op1", to_fixed(2100)),
        make_attestation("op2", to_fixed(2105)),
        make_attestation("op3", to_fixed(2110)),
    ]


class TestConsensusHappyPath:
    """Test consensus over agreeing operators."""

    def test_three_agreeing_operators(self) -> None:
        """Equal stakes and reliability should average prices exactly."""
        result = ConsensusEngine().compute_consensus(three_honest_operators(), 6600)

        assert result.consensus_price == to_fixed(2105)
        assert result.total_stake == 30 * PRECISION
        assert result.participating_stake == 30 * PRECISION
        # deviations 23, 0, 23 -> average 15
        assert result.convergence_score == 9985
        # 3994 + 3000 + 1200 + 900
        assert result.confidence_level == 9094
        assert result.has_consensus is True

    def test_five_identical_operators_full_confidence(self) -> None:
        atts = [
            make_attestation(f"op{i}", to_fixed(2000), reliability=10000)
            for i in range(5)
        ]
        result = ConsensusEngine().compute_consensus(atts, 10000)
        assert result.confidence_level == 10000
        assert result.has_consensus is True

    def test_single_operator_below_default_threshold(self) -> None:
        """One operator scores 4000 + 0 + 400 + 900 = 5300."""
        atts = [make_attestation("op1", to_fixed(2000))]
        engine = ConsensusEngine()

        result = engine.compute_consensus(atts, 6600)
        assert result.confidence_level == 5300
        assert result.has_consensus is False

        assert engine.compute_consensus(atts, 5100).has_consensus is True


class TestConsensusWeighting:
    """Test stake and reliability weighting."""

    def test_reliability_refines_stake(self) -> None:
        """Zero-reliability operators should not move the price."""
        atts = [
            make_attestation("good", 100, stake=1, reliability=10000),
            make_attestation("bad", 200, stake=1, reliability=0),
        ]
        result = ConsensusEngine().compute_consensus(atts, 5100)

        assert result.consensus_price == 100
        assert result.total_stake == 2
        assert result.participating_stake == 1

    def test_falls_back_to_stake_weighting(self) -> None:
        """When every reliability weight is zero, stake alone weights prices."""
        atts = [
            make_attestation("a", 100, stake=1, reliability=0),
            make_attestation("b", 200, stake=3, reliability=0),
        ]
        result = ConsensusEngine().compute_consensus(atts, 5100)

        assert result.consensus_price == 175
        assert result.participating_stake == 4

    def test_zero_total_stake_returns_empty(self) -> None:
        atts = [
            make_attestation("a", to_fixed(2000), stake=0),
            make_attestation("b", to_fixed(2001), stake=0),
        ]
        result = ConsensusEngine().compute_consensus(atts, 6600)
        assert result == ConsensusResult.empty()


class TestConsensusInvariants:
    """Test properties that hold for every consensus round."""

    @pytest.mark.parametrize(
        "prices,stakes",
        [
            ([100, 200, 300], [1, 1, 1]),
            ([2000, 2500], [7, 1]),
            ([1, 10**30], [10**18, 1]),
            ([999, 1000, 1001, 5000], [5, 5, 5, 1]),
        ],
    )
    def test_price_within_reported_range(self, prices, stakes) -> None:
        atts = [
            make_attestation(f"op{i}", p, stake=s, reliability=7000)
            for i, (p, s) in enumerate(zip(prices, stakes))
        ]
        result = ConsensusEngine().compute_consensus(atts, 5100)

        assert min(prices) <= result.consensus_price <= max(prices)
        assert 0 <= result.confidence_level <= 10000
        assert 0 <= result.convergence_score <= 10000
        assert result.participating_stake <= result.total_stake

    def test_deterministic(self) -> None:
        """Identical inputs should produce identical results."""
        engine = ConsensusEngine()
        first = engine.compute_consensus(three_honest_operators(), 6600)
        second = engine.compute_consensus(three_honest_operators(), 6600)
        assert first == second

    def test_tighter_prices_converge_better(self) -> None:
        """Pulling prices toward the consensus should not lower convergence."""
        engine = ConsensusEngine()
        wide = [
            make_attestation("a", to_fixed(2000)),
            make_attestation("b", to_fixed(2100)),
            make_attestation("c", to_fixed(2200)),
        ]
        tight = [
            make_attestation("a", to_fixed(2050)),
            make_attestation("b", to_fixed(2100)),
            make_attestation("c", to_fixed(2150)),
        ]
        wide_result = engine.compute_consensus(wide, 5100)
        tight_result = engine.compute_consensus(tight, 5100)

        assert wide_result.consensus_price == tight_result.consensus_price
        assert tight_result.convergence_score >= wide_result.convergence_score


class TestConsensusErrors:
    """Test rejected inputs."""

    def test_empty_attestations(self) -> None:
        with pytest.raises(InputError, match="No attestations"):
            ConsensusEngine().compute_consensus([], 6600)

    def test_threshold_below_majority(self) -> None:
        with pytest.raises(InputError, match="5100"):
            ConsensusEngine().compute_consensus(three_honest_operators(), 5000)
