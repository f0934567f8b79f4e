"""Unit tests for PoolKey."""

import pytest
from eth_abi import encode
from web3 import Web3

from avs_oracle.src.PoolKey import ZERO_ADDRESS, PoolKey

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"


class TestPoolKeyInit:
    """Test PoolKey construction."""

    def test_sorts_currencies(self) -> None:
        """Currencies should be ordered by address regardless of input order."""
        key = PoolKey(WETH, USDC, 3000, 60)
        assert key.currency0 == Web3.to_checksum_address(USDC)
        assert key.currency1 == Web3.to_checksum_address(WETH)

    def test_default_hooks(self) -> None:
        assert PoolKey(USDC, WETH, 3000, 60).hooks == ZERO_ADDRESS

    def test_same_currency_rejected(self) -> None:
        with pytest.raises(ValueError, match="must differ"):
            PoolKey(USDC, Web3.to_checksum_address(USDC), 3000, 60)

    @pytest.mark.parametrize(
        "fee,tick_spacing", [(-1, 60), (2**24, 60), (3000, 0), (3000, 2**15)]
    )
    def test_invalid_numbers(self, fee: int, tick_spacing: int) -> None:
        with pytest.raises(ValueError):
            PoolKey(USDC, WETH, fee, tick_spacing)

    def test_invalid_address(self) -> None:
        with pytest.raises(ValueError):
            PoolKey("0x1234", WETH, 3000, 60)


class TestPoolKeyId:
    """Test pool id derivation."""

    def test_order_independent(self) -> None:
        assert PoolKey(USDC, WETH, 3000, 60).pool_id == (
            PoolKey(WETH, USDC, 3000, 60).pool_id
        )

    def test_matches_abi_encoding(self) -> None:
        """The id should hash the ABI-encoded sorted key."""
        key = PoolKey(WETH, USDC, 500, 10)
        encoded = encode(
            ["address", "address", "uint24", "int24", "address"],
            [
                Web3.to_checksum_address(USDC),
                Web3.to_checksum_address(WETH),
                500,
                10,
                ZERO_ADDRESS,
            ],
        )
        assert key.pool_id == Web3.to_hex(Web3.keccak(encoded))

    def test_format(self) -> None:
        pool_id = PoolKey(USDC, WETH, 3000, 60).pool_id
        assert pool_id.startswith("0x")
        assert len(pool_id) == 66

    def test_fee_changes_id(self) -> None:
        assert PoolKey(USDC, WETH, 3000, 60).pool_id != (
            PoolKey(USDC, WETH, 500, 60).pool_id
        )


class TestPoolKeyFromString:
    """Test parsing slash-separated pool keys."""

    def test_four_parts(self) -> None:
        key = PoolKey.from_string(f"{WETH}/{USDC}/3000/60")
        assert key == PoolKey(USDC, WETH, 3000, 60)

    def test_five_parts(self) -> None:
        hooks = "0x00000000000000000000000000000000000000aa"
        key = PoolKey.from_string(f"{USDC}/{WETH}/3000/60/{hooks}")
        assert key.hooks == Web3.to_checksum_address(hooks)

    def test_str_roundtrip(self) -> None:
        key = PoolKey(USDC, WETH, 3000, 60)
        assert PoolKey.from_string(str(key)) == key
        assert hash(PoolKey.from_string(str(key))) == hash(key)

    @pytest.mark.parametrize(
        "key_str",
        [
            f"{USDC}/{WETH}/3000",
            f"{USDC}/{WETH}/fee/60",
            f"{USDC}/{WETH}/3000/60/{ZERO_ADDRESS}/extra",
        ],
    )
    def test_invalid(self, key_str: str) -> None:
        with pytest.raises(ValueError):
            PoolKey.from_string(key_str)
