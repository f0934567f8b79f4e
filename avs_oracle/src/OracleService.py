"""OracleService: Per-pool consensus lifecycle for the hosting node.

This module owns everything the pure consensus math leaves to its host:
- Per-pool configuration and the latest attestation of each operator
- Serialized recomputation (one lock per pool) and snapshot publication
- A rolling consensus price history for manipulation detection
- The swap gate that consults the published snapshot
- Observability events (ConsensusReached, SwapBlocked, ManipulationDetected)

Pool lifecycle:
    DISABLED <-> enabled (config toggle)
    NO_CONSENSUS -> CONSENSUS_REACHED -> STALE -> (recompute) -> ...
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .Attestation import Attestation
from .ConsensusEngine import ConsensusEngine, ConsensusResult
from .errors import InputError
from .FixedPoint import BPS, deviation_bps, format_price
from .ManipulationDetector import ManipulationDetector
from .OracleEvents import (
    ConsensusReached,
    EventListener,
    ManipulationDetected,
    OracleEvent,
    SwapBlocked,
    event_to_dict,
)
from .OutlierFilter import OutlierFilter
from .PriceValidator import (
    REASON_INSUFFICIENT_STAKE,
    OracleConfig,
    PriceValidator,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class PoolStatus(str, Enum):
    """Lifecycle state of a pool as seen by the swap gate."""

    DISABLED = "disabled"
    NO_CONSENSUS = "no_consensus"
    CONSENSUS_REACHED = "consensus_reached"
    STALE = "stale"


@dataclass(frozen=True)
class ConsensusSnapshot:
    """A published consensus result.

    :ivar result: The consensus computed for the pool.
    :ivar computed_at: Unix seconds when it was computed.
    :ivar attestation_count: Attestations that survived outlier filtering.
    :ivar sequence: Per-pool publication counter.
    """

    result: ConsensusResult
    computed_at: int
    attestation_count: int
    sequence: int


@dataclass
class PoolState:
    """Mutable state of a single pool.

    :ivar config: Current pool configuration.
    :ivar attestations: Latest attestation per operator.
    :ivar snapshot: Latest published consensus, if any.
    :ivar history: Rolling (consensus_price, computed_at) entries.
    :ivar sequence: Number of snapshots computed so far.
    """

    config: OracleConfig
    attestations: dict[str, Attestation] = field(default_factory=dict)
    snapshot: ConsensusSnapshot | None = None
    history: deque[tuple[int, int]] = field(default_factory=deque)
    sequence: int = 0


class OracleService:
    """Hosts consensus computation and price gating for many pools.

    :ivar engine: Consensus engine shared by all pools.
    :ivar outlier_filter: Filter applied before each consensus round.
    :ivar detector: Manipulation detector run over price history.
    :ivar validator: Per-swap price validator.
    :ivar history_size: Maximum consensus prices kept per pool.
    """

    DEFAULT_HISTORY_SIZE = 64

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        :param history_size: Consensus prices kept per pool for manipulation
            detection (default: 64).
        :param clock: Source of the current unix time.
        :raises ValueError: If history_size is too small to detect anything.
        """
        if history_size < ManipulationDetector.MIN_POINTS:
            raise ValueError(
                f"history_size must be at least {ManipulationDetector.MIN_POINTS}"
            )
        self.engine = ConsensusEngine()
        self.outlier_filter = OutlierFilter()
        self.detector = ManipulationDetector()
        self.validator = PriceValidator()
        self.history_size = history_size
        self._clock = clock

        self._pools: dict[str, PoolState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[EventListener] = []
        self._reliability: dict[str, int] = {}

    # -- configuration -----------------------------------------------------

    def configure_pool(self, pool_id: str, config: OracleConfig) -> None:
        """Create a pool or replace its configuration.

        Attestations and the published snapshot survive a reconfiguration.
        """
        state = self._pools.get(pool_id)
        if state is None:
            self._locks[pool_id] = asyncio.Lock()
            self._pools[pool_id] = PoolState(
                config=config, history=deque(maxlen=self.history_size)
            )
            logger.info(f"Pool {pool_id} configured: {config}")
        else:
            state.config = config
            logger.info(f"Pool {pool_id} reconfigured: {config}")

    def set_pool_enabled(self, pool_id: str, enabled: bool) -> None:
        """Toggle oracle gating for a pool."""
        state = self._require_pool(pool_id)
        state.config = dataclasses.replace(state.config, enabled=enabled)
        logger.info(f"Pool {pool_id} {'enabled' if enabled else 'disabled'}")

    def get_config(self, pool_id: str) -> OracleConfig | None:
        state = self._pools.get(pool_id)
        return state.config if state else None

    def pool_ids(self) -> list[str]:
        return list(self._pools)

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback receiving every emitted event."""
        self._listeners.append(listener)

    # -- attestations ------------------------------------------------------

    def submit_attestation(self, pool_id: str, attestation: Attestation) -> bool:
        """Record an operator's attestation for a pool.

        Only the newest attestation per operator is kept.

        :param pool_id: Pool the price is for.
        :param attestation: Authenticated attestation.
        :returns: True if stored, False if an equal or newer one exists.
        :raises InputError: If the pool is not configured.
        """
        state = self._require_pool(pool_id)
        existing = state.attestations.get(attestation.operator_id)
        if existing is not None and existing.timestamp >= attestation.timestamp:
            logger.debug(
                f"{pool_id}: ignoring attestation from {attestation.operator_id} "
                f"at {attestation.timestamp} (have {existing.timestamp})"
            )
            return False

        state.attestations[attestation.operator_id] = attestation
        logger.debug(
            f"{pool_id}: attestation from {attestation.operator_id} "
            f"price={format_price(attestation.price)} stake={attestation.stake}"
        )
        return True

    def get_attestations(self, pool_id: str) -> list[Attestation]:
        return list(self._require_pool(pool_id).attestations.values())

    # -- consensus ---------------------------------------------------------

    async def update_consensus(
        self, pool_id: str, now: int | None = None
    ) -> ConsensusResult | None:
        """Recompute and publish the consensus for a pool.

        Attestations older than the pool's staleness limit are ignored and
        outliers are filtered before the engine runs. A result computed for
        an earlier time than the published snapshot is returned but not
        published.

        :param pool_id: Pool to recompute.
        :param now: Current unix seconds (defaults to the service clock).
        :returns: The computed result, or None without fresh attestations.
        :raises InputError: If the pool is not configured.
        """
        state = self._require_pool(pool_id)
        async with self._locks[pool_id]:
            config = state.config
            now = self._now() if now is None else now

            fresh = [
                a
                for a in state.attestations.values()
                if now - a.timestamp <= config.max_staleness_seconds
            ]
            if not fresh:
                logger.warning(f"{pool_id}: no fresh attestations, consensus skipped")
                return None

            kept, dropped = self.outlier_filter.partition(
                fresh, config.max_price_deviation_bps
            )
            if not kept:
                # Possible with an even split far from the median.
                logger.warning(
                    f"{pool_id}: all {len(fresh)} attestations dropped as outliers"
                )
                return None

            result = self.engine.compute_consensus(kept, config.consensus_threshold_bps)

            if state.snapshot is not None and state.snapshot.computed_at > now:
                logger.warning(
                    f"{pool_id}: computed at {now}, older than published "
                    f"{state.snapshot.computed_at}; not publishing"
                )
                return result

            state.sequence += 1
            state.snapshot = ConsensusSnapshot(
                result=result,
                computed_at=now,
                attestation_count=len(kept),
                sequence=state.sequence,
            )

            dropped_str = ", ".join(
                f"{a.operator_id}={format_price(a.price)}" for a in dropped
            )
            logger.info(
                f"{pool_id}: round {state.sequence} "
                f"price={format_price(result.consensus_price)} "
                f"confidence={result.confidence_level} "
                f"convergence={result.convergence_score} "
                f"consensus={result.has_consensus} "
                f"attestations={len(kept)}"
                + (f", dropped: [{dropped_str}]" if dropped else "")
            )

            if result.has_consensus:
                state.history.append((result.consensus_price, now))
                self._emit(
                    ConsensusReached(
                        pool_id=pool_id,
                        price=result.consensus_price,
                        total_stake=result.total_stake,
                        attestation_count=len(kept),
                        confidence=result.confidence_level,
                    )
                )

            if result.consensus_price > 0:
                for attestation in fresh:
                    deviation = deviation_bps(attestation.price, result.consensus_price)
                    if deviation > config.max_price_deviation_bps:
                        self._emit(
                            ManipulationDetected(
                                pool_id=pool_id,
                                suspicious_operator=attestation.operator_id,
                                reported_price=attestation.price,
                                consensus_price=result.consensus_price,
                                deviation=deviation,
                            )
                        )

            return result

    def get_snapshot(self, pool_id: str) -> ConsensusSnapshot | None:
        state = self._pools.get(pool_id)
        return state.snapshot if state else None

    def get_history(self, pool_id: str) -> list[tuple[int, int]]:
        return list(self._require_pool(pool_id).history)

    def pool_status(self, pool_id: str, now: int | None = None) -> PoolStatus:
        """Current lifecycle state of a pool.

        :raises InputError: If the pool is not configured.
        """
        state = self._require_pool(pool_id)
        if not state.config.enabled:
            return PoolStatus.DISABLED
        snapshot = state.snapshot
        if snapshot is None or not snapshot.result.has_consensus:
            return PoolStatus.NO_CONSENSUS
        now = self._now() if now is None else now
        if now - snapshot.computed_at > state.config.max_staleness_seconds:
            return PoolStatus.STALE
        return PoolStatus.CONSENSUS_REACHED

    def check_manipulation(self, pool_id: str) -> tuple[bool, int]:
        """Run the manipulation detector over a pool's consensus history.

        :returns: Tuple of (is_manipulation, suspicion_level); (False, 0)
            while the history is too short to judge.
        """
        history = self._require_pool(pool_id).history
        if len(history) < ManipulationDetector.MIN_POINTS:
            return False, 0

        prices = [price for price, _ in history]
        timestamps = [ts for _, ts in history]
        is_manipulation, suspicion = self.detector.detect(prices, timestamps)
        if is_manipulation:
            logger.warning(
                f"{pool_id}: suspicious price history (suspicion={suspicion} bps, "
                f"points={len(prices)})"
            )
        return is_manipulation, suspicion

    def operator_deviation(self, pool_id: str, operator: str) -> int | None:
        """Deviation of an operator's latest attestation from the consensus.

        :returns: Deviation in bps, or None if there is no attestation or no
            consensus price to compare with.
        """
        state = self._require_pool(pool_id)
        attestation = state.attestations.get(operator)
        if attestation is None or state.snapshot is None:
            return None
        consensus_price = state.snapshot.result.consensus_price
        if consensus_price == 0:
            return None
        return deviation_bps(attestation.price, consensus_price)

    # -- swap gate ---------------------------------------------------------

    def before_swap(
        self,
        pool_id: str,
        actor: str,
        requested_price: int,
        now: int | None = None,
    ) -> ValidationResult:
        """Decide whether a swap at ``requested_price`` may proceed.

        Pools that are not configured or not enabled are not gated.

        :param pool_id: Pool the swap targets.
        :param actor: Address initiating the swap.
        :param requested_price: Price implied by the swap (fixed point).
        :param now: Current unix seconds (defaults to the service clock).
        :returns: ValidationResult; blocked swaps also emit SwapBlocked.
        """
        state = self._pools.get(pool_id)
        if state is None or not state.config.enabled:
            return ValidationResult(is_valid=True)

        config = state.config
        snapshot = state.snapshot
        now = self._now() if now is None else now

        if (
            snapshot is None
            or snapshot.result.total_stake == 0
            or snapshot.result.participating_stake < config.min_stake_required
        ):
            result = ValidationResult.rejected(REASON_INSUFFICIENT_STAKE)
        else:
            result = self.validator.validate(
                current_price=requested_price,
                consensus_price=snapshot.result.consensus_price,
                confidence_level=snapshot.result.confidence_level,
                observed_at=snapshot.computed_at,
                now=now,
                config=config,
            )

        if not result.is_valid:
            self._emit(
                SwapBlocked(
                    pool_id=pool_id,
                    actor=actor,
                    requested_price=requested_price,
                    consensus_price=snapshot.result.consensus_price if snapshot else 0,
                    reason=result.reason,
                )
            )
        return result

    # -- operator reliability ---------------------------------------------

    def get_reliability(self, operator: str) -> int:
        """Reliability score of an operator, full reliability if unknown."""
        return self._reliability.get(operator, BPS)

    def record_misbehaviour(self, operator: str, deviation: int) -> int:
        """Lower an operator's reliability by a measured deviation.

        :param operator: Operator found deviating.
        :param deviation: Deviation in bps, subtracted from its reliability.
        :returns: The new reliability score.
        """
        reliability = max(self.get_reliability(operator) - deviation, 0)
        self._reliability[operator] = reliability
        logger.warning(
            f"Operator {operator} reliability lowered to {reliability} "
            f"(deviation {deviation} bps)"
        )
        return reliability

    # -- internals ---------------------------------------------------------

    def _require_pool(self, pool_id: str) -> PoolState:
        state = self._pools.get(pool_id)
        if state is None:
            raise InputError(f"Pool {pool_id} is not configured")
        return state

    def _now(self) -> int:
        return int(self._clock())

    def _emit(self, event: OracleEvent) -> None:
        logger.info(f"Event {event_to_dict(event)}")
        for listener in self._listeners:
            listener(event)
