"""
AVS Price Oracle - Stake-Weighted Consensus Module

This module forms a manipulation-resistant price consensus from operator
attestations and gates swaps against it:
- Attestation: Validated operator price report
- ConsensusEngine: Weighted price plus confidence scoring
- OutlierFilter: Median-based attestation filtering
- ManipulationDetector: Volatility analysis over price history
- PriceValidator: Per-swap deviation/staleness/confidence gate
- MultiSourceValidator: Weighted combination of exchange prices
- OracleService: Per-pool state, serialized recomputation and events
- TaskPerformer: Operator-node task routing
- PriceAttestor: Operator-side multi-exchange price derivation
- fetchers: Exchange price fetcher implementations
"""

from .Attestation import Attestation
from .ConsensusEngine import (
    MIN_CONSENSUS_THRESHOLD_BPS,
    ConsensusEngine,
    ConsensusResult,
)
from .errors import InputError, OracleError, TaskValidationError
from .FixedPoint import BPS, PRECISION, deviation_bps, from_fixed, to_fixed
from .ManipulationDetector import ManipulationDetector
from .MultiSourceValidator import MultiSourceValidator
from .OracleService import ConsensusSnapshot, OracleService, PoolStatus
from .OutlierFilter import OutlierFilter, median_price
from .PoolKey import PoolKey
from .PriceAttestor import PriceAttestor, PriceObservation
from .PriceValidator import (
    OracleConfig,
    PriceValidator,
    ValidationResult,
    ValidationThresholds,
)
from .TaskPerformer import TaskPerformer, TaskRequest, TaskResponse, TaskType

__all__ = [
    "Attestation",
    "BPS",
    "ConsensusEngine",
    "ConsensusResult",
    "ConsensusSnapshot",
    "InputError",
    "MIN_CONSENSUS_THRESHOLD_BPS",
    "ManipulationDetector",
    "MultiSourceValidator",
    "OracleConfig",
    "OracleError",
    "OracleService",
    "OutlierFilter",
    "PRECISION",
    "PoolKey",
    "PoolStatus",
    "PriceAttestor",
    "PriceObservation",
    "PriceValidator",
    "TaskPerformer",
    "TaskRequest",
    "TaskResponse",
    "TaskType",
    "TaskValidationError",
    "ValidationResult",
    "ValidationThresholds",
    "deviation_bps",
    "from_fixed",
    "median_price",
    "to_fixed",
]
