"""Fixed-point helpers shared by the consensus math.

Prices carry 18 fractional decimal digits and every percentage-like value is
expressed in basis points. All operations are integer-only so redundant
evaluators always agree bit for bit.

.. code-block:: python

    >>> to_fixed("2105.5")
    2105500000000000000000
    >>> deviation_bps(to_fixed(2110), to_fixed(2100))
    47
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from .errors import InputError

# Number of fractional decimal digits in a fixed-point price.
DECIMALS = 18
PRECISION = 10**DECIMALS

# Enough significant digits for any uint256 amount.
MAX_DIGITS = 80

# 100% expressed in basis points.
BPS = 10_000


def to_fixed(value: int | float | str | Decimal) -> int:
    """Convert a decimal amount to an 18-decimal fixed-point integer.

    Floats are converted through their shortest string representation so
    ``2100.1`` becomes exactly ``2100.1``. Extra precision is truncated.

    :param value: Amount in whole units (e.g., ``"2105.25"``).
    :returns: Fixed-point integer.
    :raises InputError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise InputError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InputError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise InputError(f"Invalid amount: {value!r}")
    with localcontext() as ctx:
        ctx.prec = MAX_DIGITS
        scaled = amount * PRECISION
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_fixed(value: int) -> Decimal:
    """Convert a fixed-point integer back to a Decimal amount.

    :param value: Fixed-point integer.
    :returns: Exact Decimal representation.
    """
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), PRECISION)
    return Decimal(f"{sign}{whole}.{frac:0{DECIMALS}d}")


def format_price(value: int, places: int = 6) -> str:
    """Format a fixed-point price for logging."""
    return f"{from_fixed(value):.{places}f}"


def deviation_bps(price: int, reference: int) -> int:
    """Absolute deviation of ``price`` from ``reference`` in basis points.

    A zero reference yields 0 instead of dividing by zero.

    :param price: Observed price.
    :param reference: Reference price the deviation is measured against.
    :returns: ``|price - reference| * 10000 // reference``.
    """
    if reference == 0:
        return 0
    return abs(price - reference) * BPS // reference


def clamp_bps(value: int) -> int:
    """Clamp a score into ``[0, 10000]``."""
    if value < 0:
        return 0
    if value > BPS:
        return BPS
    return value
