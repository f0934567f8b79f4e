"""Unit tests for TaskPerformer."""

import asyncio
import json
from decimal import Decimal
from typing import Any

import pytest
from web3 import Web3

from avs_oracle.src.errors import InputError, TaskValidationError
from avs_oracle.src.FixedPoint import PRECISION, to_fixed
from avs_oracle.src.OracleService import OracleService
from avs_oracle.src.PriceValidator import OracleConfig
from avs_oracle.src.TaskPerformer import (
    TaskPerformer,
    TaskRequest,
    TaskType,
    parse_task_payload,
)

POOL = "0xpool"
T = 1_700_000_000
STAKE = str(10 * PRECISION)


def make_task(task_type: str, task_id: bytes = b"task-1", **parameters) -> TaskRequest:
    payload = {"type": task_type, "parameters": parameters}
    return TaskRequest(task_id=task_id, payload=json.dumps(payload).encode())


def attestation_task(operator: str, price: str, **extra) -> TaskRequest:
    parameters = {
        "pool_id": POOL,
        "operator": operator,
        "price": price,
        "source_hash": "0xhash",
        "stake": STAKE,
        "timestamp": T,
    }
    parameters.update(extra)
    return make_task("price_attestation", **parameters)


def make_performer() -> TaskPerformer:
    service = OracleService(clock=lambda: T + 10)
    service.configure_pool(POOL, OracleConfig(max_price_deviation_bps=1000))
    return TaskPerformer(service)


def run(performer: TaskPerformer, task: TaskRequest) -> dict[str, Any]:
    response = asyncio.run(performer.handle_task(task))
    assert response.task_id == task.task_id
    return json.loads(response.result)


def submit_prices(performer: TaskPerformer, prices: dict[str, str]) -> None:
    for operator, price in prices.items():
        run(performer, attestation_task(operator, price))


HONEST = {"op1": "2100", "op2": "2105", "op3": "2110"}


class TestParseTaskPayload:
    """Test payload decoding."""

    def test_parse(self) -> None:
        payload = parse_task_payload(b'{"type": "consensus_validation"}')
        assert payload.type is TaskType.CONSENSUS_VALIDATION
        assert payload.parameters == {}

    def test_numbers_decoded_exactly(self) -> None:
        raw = (
            b'{"type": "price_attestation", "parameters": '
            b'{"price": 2105.123456789012345678}}'
        )
        payload = parse_task_payload(raw)
        assert payload.parameters["price"] == Decimal("2105.123456789012345678")

    @pytest.mark.parametrize(
        "raw",
        [
            b"{",
            b"[]",
            b'{"type": "unknown"}',
            b'{"type": "consensus_validation", "parameters": [1]}',
            b"\xff\xfe",
        ],
    )
    def test_invalid(self, raw: bytes) -> None:
        with pytest.raises(TaskValidationError):
            parse_task_payload(raw)


class TestValidateTask:
    """Test task validation."""

    def test_empty_task_id(self) -> None:
        with pytest.raises(TaskValidationError, match="task ID"):
            make_performer().validate_task(TaskRequest(task_id=b"", payload=b"{}"))

    def test_empty_payload(self) -> None:
        with pytest.raises(TaskValidationError, match="payload cannot be empty"):
            make_performer().validate_task(TaskRequest(task_id=b"t", payload=b""))

    def test_error_carries_task_id(self) -> None:
        task = make_task("consensus_validation", task_id=b"task-42")
        with pytest.raises(TaskValidationError) as exc_info:
            make_performer().validate_task(task)
        assert exc_info.value.task_id == "task-42"
        assert "pool_id" in str(exc_info.value)

    @pytest.mark.parametrize(
        "task",
        [
            attestation_task("op1", "0"),
            attestation_task("op1", "-5"),
            attestation_task("op1", "abc"),
            attestation_task("op1", True),
            attestation_task("", "2100"),
            attestation_task("op1", "2100", source_hash=""),
            make_task("manipulation_challenge", operator="op1"),
            make_task("operator_slashing", operator="op1"),
            make_task("operator_slashing", operator="op1", slash_amount=0),
        ],
    )
    def test_invalid_parameters(self, task: TaskRequest) -> None:
        with pytest.raises(TaskValidationError):
            make_performer().validate_task(task)

    def test_valid_task(self) -> None:
        payload = make_performer().validate_task(attestation_task("op1", "2100.5"))
        assert payload.type is TaskType.PRICE_ATTESTATION


class TestPriceAttestationTask:
    """Test price_attestation handling."""

    def test_accepted(self) -> None:
        performer = make_performer()
        result = run(performer, attestation_task("op1", "2105.5"))

        assert result == {
            "status": "accepted",
            "pool_id": POOL,
            "operator": "op1",
            "price": str(to_fixed("2105.5")),
            "source_hash": "0xhash",
        }
        [stored] = performer.service.get_attestations(POOL)
        assert stored.stake == 10 * PRECISION
        assert stored.timestamp == T
        assert stored.reliability == 10000

    def test_duplicate_ignored(self) -> None:
        performer = make_performer()
        run(performer, attestation_task("op1", "2105"))
        assert run(performer, attestation_task("op1", "2106"))["status"] == "ignored"

    def test_uses_recorded_reliability(self) -> None:
        performer = make_performer()
        performer.service.record_misbehaviour("op1", 1000)
        run(performer, attestation_task("op1", "2105"))

        [stored] = performer.service.get_attestations(POOL)
        assert stored.reliability == 9000

    def test_reliability_parameter_ignored(self) -> None:
        performer = make_performer()
        performer.service.record_misbehaviour("op4", 4251)
        run(performer, attestation_task("op4", "2105", reliability=10000))

        [stored] = performer.service.get_attestations(POOL)
        assert stored.reliability == 5749

    def test_numeric_price_keeps_precision(self) -> None:
        performer = make_performer()
        task = TaskRequest(
            task_id=b"task-1",
            payload=(
                b'{"type": "price_attestation", "parameters": {"pool_id": "0xpool",'
                b' "operator": "op1", "price": 2105.123456789012345678,'
                b' "source_hash": "0xhash", "stake": 1, "timestamp": 1700000000}}'
            ),
        )
        run(performer, task)

        [stored] = performer.service.get_attestations(POOL)
        assert stored.price == 2105123456789012345678

    def test_unknown_pool(self) -> None:
        with pytest.raises(InputError, match="not configured"):
            run(make_performer(), attestation_task("op1", "2105", pool_id="0xother"))

    def test_invalid_stake(self) -> None:
        with pytest.raises(InputError, match="Invalid attestation field"):
            run(make_performer(), attestation_task("op1", "2105", stake="lots"))


class TestConsensusValidationTask:
    """Test consensus_validation handling."""

    def test_consensus(self) -> None:
        performer = make_performer()
        submit_prices(performer, HONEST)

        result = run(performer, make_task("consensus_validation", pool_id=POOL))

        assert result["status"] == "consensus_reached"
        assert result["has_consensus"] is True
        assert result["consensus_price"] == str(to_fixed(2105))
        assert result["total_stake"] == str(30 * PRECISION)
        assert result["participating_stake"] == str(30 * PRECISION)
        assert result["confidence_level"] >= 6600

    def test_no_attestations(self) -> None:
        result = run(make_performer(), make_task("consensus_validation", pool_id=POOL))
        assert result == {
            "pool_id": POOL,
            "status": "no_consensus",
            "has_consensus": False,
        }


class TestChallengeAndSlashingTasks:
    """Test manipulation_challenge and operator_slashing handling."""

    def make_round(self) -> TaskPerformer:
        performer = make_performer()
        submit_prices(performer, {**HONEST, "op4": "3000"})
        run(performer, make_task("consensus_validation", pool_id=POOL))
        return performer

    def test_challenge_upheld(self) -> None:
        performer = self.make_round()
        result = run(
            performer,
            make_task(
                "manipulation_challenge", operator="op4", evidence="quote dump"
            ),
        )

        assert result["upheld"] is True
        assert result["evidence_hash"] == Web3.to_hex(Web3.keccak(text="quote dump"))
        [finding] = result["pools"]
        assert finding["pool_id"] == POOL
        assert finding["deviation_bps"] == 4251
        assert finding["operator_flagged"] is True
        assert finding["history_manipulation"] is False

    def test_challenge_rejected_for_honest_operator(self) -> None:
        performer = self.make_round()
        result = run(
            performer,
            make_task(
                "manipulation_challenge", operator="op1", evidence="x", pool_id=POOL
            ),
        )
        assert result["upheld"] is False
        assert result["pools"][0]["deviation_bps"] == 23

    def test_challenge_unknown_pool(self) -> None:
        performer = self.make_round()
        task = make_task(
            "manipulation_challenge", operator="op4", evidence="x", pool_id="0xother"
        )
        with pytest.raises(TaskValidationError, match="unknown pool_id"):
            run(performer, task)

    def test_slashing_upheld_lowers_reliability(self) -> None:
        performer = self.make_round()
        result = run(
            performer,
            make_task("operator_slashing", operator="op4", slash_amount="1.5"),
        )

        assert result == {
            "operator": "op4",
            "slash_amount": "1.5",
            "upheld": True,
            "deviation_bps": 4251,
            "reliability": 5749,
        }
        assert performer.service.get_reliability("op4") == 5749

    def test_slashing_not_upheld(self) -> None:
        performer = self.make_round()
        result = run(
            performer,
            make_task("operator_slashing", operator="op1", slash_amount="1"),
        )

        assert result["upheld"] is False
        assert result["deviation_bps"] == 0
        assert result["reliability"] == 10000
