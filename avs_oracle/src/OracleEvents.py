"""Observability events emitted by the oracle service.

Payloads match the events the on-chain hook emits, so off-chain logs and
on-chain logs can be joined field for field.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class ConsensusReached:
    """A pool reached consensus."""

    pool_id: str
    price: int
    total_stake: int
    attestation_count: int
    confidence: int


@dataclass(frozen=True)
class SwapBlocked:
    """A swap was denied by the price gate."""

    pool_id: str
    actor: str
    requested_price: int
    consensus_price: int
    reason: str


@dataclass(frozen=True)
class ManipulationDetected:
    """An operator reported a price too far from the consensus."""

    pool_id: str
    suspicious_operator: str
    reported_price: int
    consensus_price: int
    deviation: int


OracleEvent = ConsensusReached | SwapBlocked | ManipulationDetected
EventListener = Callable[[OracleEvent], None]


def event_to_dict(event: OracleEvent) -> dict[str, Any]:
    """Serialize an event to a JSON-friendly dict with its type name."""
    data: dict[str, Any] = {"event": type(event).__name__}
    data.update(asdict(event))
    return data
