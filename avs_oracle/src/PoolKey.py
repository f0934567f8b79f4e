"""PoolKey: Identifies the pool an oracle consensus belongs to.

Mirrors the Uniswap v4 pool key. The pool id is computed as:
    keccak256(abi.encode(currency0, currency1, fee, tickSpacing, hooks))

so ids computed here match the ids the on-chain hook uses when it asks for
a consensus.

.. code-block:: python

    >>> key = PoolKey.from_string(f"{WETH}/{USDC}/3000/60")
    >>> key.pool_id
    '0x...'
"""

from __future__ import annotations

from eth_abi import encode
from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MAX_FEE = 2**24 - 1
MIN_TICK_SPACING = 1
MAX_TICK_SPACING = 2**15 - 1


class PoolKey:
    """Pool key with currencies sorted by address.

    :ivar currency0: Lower-sorted currency address (checksummed).
    :ivar currency1: Higher-sorted currency address (checksummed).
    :ivar fee: Pool fee in hundredths of a bip.
    :ivar tick_spacing: Tick spacing of the pool.
    :ivar hooks: Hook contract address (checksummed).
    """

    def __init__(
        self,
        currency_a: str,
        currency_b: str,
        fee: int,
        tick_spacing: int,
        hooks: str = ZERO_ADDRESS,
    ) -> None:
        """Initialize a pool key.

        :param currency_a: One currency address (order does not matter).
        :param currency_b: The other currency address.
        :param fee: Pool fee (0 to 2**24 - 1).
        :param tick_spacing: Tick spacing (1 to 32767).
        :param hooks: Hook contract address.
        :raises ValueError: If an address or numeric field is invalid.
        """
        a = Web3.to_checksum_address(currency_a)
        b = Web3.to_checksum_address(currency_b)
        if a == b:
            raise ValueError(f"Pool currencies must differ, got {a} twice")
        if not 0 <= fee <= MAX_FEE:
            raise ValueError(f"Invalid fee {fee}")
        if not MIN_TICK_SPACING <= tick_spacing <= MAX_TICK_SPACING:
            raise ValueError(f"Invalid tick spacing {tick_spacing}")

        self.currency0, self.currency1 = sorted((a, b), key=lambda c: int(c, 16))
        self.fee = fee
        self.tick_spacing = tick_spacing
        self.hooks = Web3.to_checksum_address(hooks)

    def __str__(self) -> str:
        return (
            f"{self.currency0}/{self.currency1}/{self.fee}/"
            f"{self.tick_spacing}/{self.hooks}"
        )

    def __repr__(self) -> str:
        return (
            f"PoolKey({self.currency0!r}, {self.currency1!r}, {self.fee}, "
            f"{self.tick_spacing}, {self.hooks!r})"
        )

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PoolKey):
            return NotImplemented
        return str(self) == str(other)

    @property
    def pool_id(self) -> str:
        """The 0x-prefixed keccak256 pool id."""
        encoded = encode(
            ["address", "address", "uint24", "int24", "address"],
            [self.currency0, self.currency1, self.fee, self.tick_spacing, self.hooks],
        )
        return Web3.to_hex(Web3.keccak(encoded))

    @classmethod
    def from_string(cls, key_str: str) -> PoolKey:
        """Parse ``"currency0/currency1/fee/tickSpacing[/hooks]"``.

        :param key_str: Slash-separated pool key.
        :returns: New PoolKey.
        :raises ValueError: If the format is invalid.
        """
        parts = [p.strip() for p in key_str.split("/")]
        if len(parts) not in (4, 5):
            raise ValueError(
                f"Invalid pool key '{key_str}'. "
                "Expected 'currency0/currency1/fee/tickSpacing[/hooks]'"
            )
        try:
            fee = int(parts[2])
            tick_spacing = int(parts[3])
        except ValueError as e:
            raise ValueError(f"Invalid pool key '{key_str}': {e}") from e
        hooks = parts[4] if len(parts) == 5 else ZERO_ADDRESS
        return cls(parts[0], parts[1], fee, tick_spacing, hooks)
