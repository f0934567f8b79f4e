"""TaskPerformer: Routes operator-node tasks to the oracle service.

Tasks arrive as a task id plus a JSON payload of the form::

    {"type": "price_attestation", "parameters": {"pool_id": "0x..", ...}}

Supported task types:
    - price_attestation: record an operator's price for a pool
    - consensus_validation: recompute and report a pool's consensus
    - manipulation_challenge: assess a suspected manipulator against consensus
    - operator_slashing: assess slashing evidence (no penalty is executed)

Non-integer JSON numbers are decoded as Decimal so prices reach fixed point
exactly. Every handler returns a UTF-8 JSON result. Large integers (prices,
stakes) are encoded as decimal strings.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from web3 import Web3

from .Attestation import Attestation
from .errors import InputError, OracleError, TaskValidationError
from .FixedPoint import to_fixed
from .OracleService import OracleService

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    """Kinds of task the performer handles."""

    PRICE_ATTESTATION = "price_attestation"
    CONSENSUS_VALIDATION = "consensus_validation"
    MANIPULATION_CHALLENGE = "manipulation_challenge"
    OPERATOR_SLASHING = "operator_slashing"


@dataclass(frozen=True)
class TaskRequest:
    """A task handed to the performer.

    :ivar task_id: Opaque task identifier.
    :ivar payload: JSON-encoded TaskPayload.
    """

    task_id: bytes
    payload: bytes

    @property
    def task_id_str(self) -> str:
        return self.task_id.decode(errors="replace")


@dataclass(frozen=True)
class TaskResponse:
    """Result of a handled task."""

    task_id: bytes
    result: bytes


@dataclass(frozen=True)
class TaskPayload:
    """Decoded task payload."""

    type: TaskType
    parameters: dict[str, Any]


def parse_task_payload(raw: bytes) -> TaskPayload:
    """Decode and type-check a task payload.

    :param raw: JSON bytes.
    :returns: Parsed TaskPayload.
    :raises TaskValidationError: If the JSON is malformed or the type unknown.
    """
    try:
        data = json.loads(raw, parse_float=Decimal)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TaskValidationError(f"failed to parse task payload: {e}") from e

    if not isinstance(data, dict):
        raise TaskValidationError("task payload must be a JSON object")

    try:
        task_type = TaskType(data.get("type"))
    except ValueError as e:
        raise TaskValidationError(f"unknown task type: {data.get('type')}") from e

    parameters = data.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise TaskValidationError("task parameters must be a JSON object")

    return TaskPayload(type=task_type, parameters=parameters)


def _require_str(params: dict[str, Any], name: str) -> str:
    value = params.get(name)
    if not isinstance(value, str) or not value:
        raise TaskValidationError(f"missing or invalid {name}")
    return value


def _require_positive(params: dict[str, Any], name: str) -> None:
    value = params.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, str)):
        raise TaskValidationError(f"missing or invalid {name}")
    try:
        amount = to_fixed(value)
    except InputError as e:
        raise TaskValidationError(f"missing or invalid {name}") from e
    if amount <= 0:
        raise TaskValidationError(f"missing or invalid {name}")


class TaskPerformer:
    """Validates and executes oracle tasks against an OracleService.

    :ivar service: Oracle service holding per-pool state.
    :ivar default_stake: Stake assumed when an attestation task carries none.
    """

    def __init__(self, service: OracleService, default_stake: int = 0) -> None:
        self.service = service
        self.default_stake = default_stake

    def validate_task(self, task: TaskRequest) -> TaskPayload:
        """Check that a task request is well-formed.

        :param task: Incoming task.
        :returns: The parsed payload.
        :raises TaskValidationError: If the task is malformed.
        """
        logger.info(f"Validating oracle task {task.task_id_str}")

        if not task.task_id:
            raise TaskValidationError("task ID cannot be empty")
        if not task.payload:
            raise TaskValidationError("task payload cannot be empty", task.task_id_str)

        try:
            payload = parse_task_payload(task.payload)
            params = payload.parameters

            if payload.type is TaskType.PRICE_ATTESTATION:
                _require_str(params, "pool_id")
                _require_positive(params, "price")
                _require_str(params, "source_hash")
                _require_str(params, "operator")
            elif payload.type is TaskType.CONSENSUS_VALIDATION:
                _require_str(params, "pool_id")
            elif payload.type is TaskType.MANIPULATION_CHALLENGE:
                _require_str(params, "operator")
                _require_str(params, "evidence")
            elif payload.type is TaskType.OPERATOR_SLASHING:
                _require_str(params, "operator")
                _require_positive(params, "slash_amount")
        except TaskValidationError as e:
            raise TaskValidationError(
                f"{task.task_id_str}: {e}", task.task_id_str
            ) from e

        logger.info(f"Task validation successful: {task.task_id_str}")
        return payload

    async def handle_task(self, task: TaskRequest) -> TaskResponse:
        """Validate a task and route it to its handler.

        :param task: Incoming task.
        :returns: TaskResponse with a JSON result.
        :raises TaskValidationError: If the task is malformed.
        :raises OracleError: If the oracle rejects the task's inputs.
        """
        payload = self.validate_task(task)
        logger.info(f"Handling {payload.type.value} task {task.task_id_str}")

        handlers = {
            TaskType.PRICE_ATTESTATION: self._handle_price_attestation,
            TaskType.CONSENSUS_VALIDATION: self._handle_consensus_validation,
            TaskType.MANIPULATION_CHALLENGE: self._handle_manipulation_challenge,
            TaskType.OPERATOR_SLASHING: self._handle_operator_slashing,
        }

        try:
            result = await handlers[payload.type](payload.parameters)
        except OracleError as e:
            logger.error(f"Task processing failed for {task.task_id_str}: {e}")
            raise

        result_bytes = json.dumps(result, sort_keys=True).encode()
        logger.info(
            f"Task processing completed: {task.task_id_str} "
            f"(result_size={len(result_bytes)})"
        )
        return TaskResponse(task_id=task.task_id, result=result_bytes)

    async def _handle_price_attestation(self, params: dict[str, Any]) -> dict[str, Any]:
        pool_id = params["pool_id"]
        operator = params["operator"]
        # Reliability is tracked by the service; a task cannot override it.
        attestation = Attestation.from_dict(
            {
                "operator": operator,
                "price": params["price"],
                "stake": params.get("stake", self.default_stake),
                "timestamp": params.get("timestamp", time.time()),
                "reliability": self.service.get_reliability(operator),
            }
        )
        accepted = self.service.submit_attestation(pool_id, attestation)
        return {
            "status": "accepted" if accepted else "ignored",
            "pool_id": pool_id,
            "operator": operator,
            "price": str(attestation.price),
            "source_hash": params["source_hash"],
        }

    async def _handle_consensus_validation(
        self, params: dict[str, Any]
    ) -> dict[str, Any]:
        pool_id = params["pool_id"]
        result = await self.service.update_consensus(pool_id)
        status = self.service.pool_status(pool_id).value
        if result is None:
            return {"pool_id": pool_id, "status": status, "has_consensus": False}
        return {
            "pool_id": pool_id,
            "status": status,
            "consensus_price": str(result.consensus_price),
            "total_stake": str(result.total_stake),
            "participating_stake": str(result.participating_stake),
            "confidence_level": result.confidence_level,
            "convergence_score": result.convergence_score,
            "has_consensus": result.has_consensus,
        }

    async def _handle_manipulation_challenge(
        self, params: dict[str, Any]
    ) -> dict[str, Any]:
        operator = params["operator"]
        findings = self._assess_operator(operator, params.get("pool_id"))
        return {
            "operator": operator,
            "evidence_hash": Web3.to_hex(Web3.keccak(text=params["evidence"])),
            "pools": findings,
            "upheld": any(f["operator_flagged"] for f in findings),
        }

    async def _handle_operator_slashing(self, params: dict[str, Any]) -> dict[str, Any]:
        operator = params["operator"]
        findings = self._assess_operator(operator, params.get("pool_id"))
        flagged = [f["deviation_bps"] for f in findings if f["operator_flagged"]]

        worst = max(flagged, default=0)
        if flagged:
            reliability = self.service.record_misbehaviour(operator, worst)
        else:
            reliability = self.service.get_reliability(operator)

        return {
            "operator": operator,
            "slash_amount": str(params["slash_amount"]),
            "upheld": bool(flagged),
            "deviation_bps": worst,
            "reliability": reliability,
        }

    def _assess_operator(
        self, operator: str, pool_id: str | None
    ) -> list[dict[str, Any]]:
        """Compare an operator's latest prices with each pool's consensus."""
        pool_ids = [pool_id] if pool_id else self.service.pool_ids()
        findings: list[dict[str, Any]] = []
        for pid in pool_ids:
            config = self.service.get_config(pid)
            if config is None:
                raise TaskValidationError(f"unknown pool_id: {pid}")
            deviation = self.service.operator_deviation(pid, operator)
            if deviation is None:
                continue
            history_flag, suspicion = self.service.check_manipulation(pid)
            findings.append(
                {
                    "pool_id": pid,
                    "deviation_bps": deviation,
                    "max_deviation_bps": config.max_price_deviation_bps,
                    "operator_flagged": deviation > config.max_price_deviation_bps,
                    "history_manipulation": history_flag,
                    "suspicion_level": suspicion,
                }
            )
        return findings
