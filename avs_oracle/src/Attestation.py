"""Attestation: a single operator's price report for one consensus round.

Attestations are validated on construction, so everything downstream can
assume positive prices, non-negative stake and reliability in basis points.

.. code-block:: python

    >>> att = Attestation("0xop1", to_fixed(2105), stake=10 * PRECISION,
    ...                   timestamp=1_700_000_000, reliability=9000)
    >>> att.reliability_weight
    9000000000000000000
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import InputError
from .FixedPoint import BPS, to_fixed


@dataclass(frozen=True)
class Attestation:
    """An already-authenticated price attestation.

    :ivar operator_id: Operator identifier (usually an address).
    :ivar price: Fixed-point price with 18 decimals, strictly positive.
    :ivar stake: Operator stake backing the report, non-negative.
    :ivar timestamp: Unix seconds when the price was observed.
    :ivar reliability: Historical reliability in basis points (0-10000).
    """

    operator_id: str
    price: int
    stake: int
    timestamp: int
    reliability: int = BPS

    def __post_init__(self) -> None:
        if not self.operator_id:
            raise InputError("operator_id must not be empty")
        if self.price <= 0:
            raise InputError(f"price must be positive, got {self.price}")
        if self.stake < 0:
            raise InputError(f"stake must be non-negative, got {self.stake}")
        if not 0 <= self.reliability <= BPS:
            raise InputError(
                f"reliability must be within [0, {BPS}], got {self.reliability}"
            )
        if self.timestamp < 0:
            raise InputError(f"timestamp must be non-negative, got {self.timestamp}")

    @property
    def reliability_weight(self) -> int:
        """Stake scaled by reliability: ``stake * reliability // 10000``."""
        return self.stake * self.reliability // BPS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attestation:
        """Build an attestation from a JSON-style dict.

        ``price`` is given in whole units and converted to fixed point;
        ``stake`` is taken as a raw integer amount.

        :param data: Mapping with ``operator``, ``price``, ``stake``,
            ``timestamp`` and optional ``reliability``.
        :returns: New Attestation.
        :raises InputError: If a field is missing or invalid.
        """
        try:
            return cls(
                operator_id=str(data["operator"]),
                price=to_fixed(data["price"]),
                stake=int(data["stake"]),
                timestamp=int(data["timestamp"]),
                reliability=int(data.get("reliability", BPS)),
            )
        except InputError:
            raise
        except KeyError as e:
            raise InputError(f"Missing attestation field: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid attestation field: {e}") from e
