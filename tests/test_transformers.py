"""Tests for identifier and amount normalization."""

from decimal import Decimal

import pytest

from crossroute.chains import EVM_NATIVE_ADDRESS, SOLANA_CHAIN_ID, SOLANA_NATIVE_ADDRESS
from crossroute.errors import InvalidRequest
from crossroute.routing.transformers import (
    WRAPPED_SOL_MINT,
    AmountTransformer,
    ChainTransformer,
    SlippageTransformer,
    TokenTransformer,
)


class TestAmountTransformer:
    """Tests for human-readable <-> smallest-unit conversion."""

    def test_to_smallest_unit(self):
        """Test conversion to smallest unit."""
        assert AmountTransformer.to_smallest_unit("1.5", 6) == "1500000"
        assert AmountTransformer.to_smallest_unit("0.000001", 6) == "1"
        assert AmountTransformer.to_smallest_unit("0", 18) == "0"
        assert AmountTransformer.to_smallest_unit("42", 0) == "42"

    def test_to_smallest_unit_truncates_extra_digits(self):
        """Test digits beyond the token's decimals are truncated, not rounded."""
        assert AmountTransformer.to_smallest_unit("1.1234567", 6) == "1123456"

    def test_to_human_readable(self):
        """Test conversion from smallest unit."""
        assert AmountTransformer.to_human_readable("1500000", 6) == "1.5"
        assert AmountTransformer.to_human_readable("1000000", 6) == "1"
        assert AmountTransformer.to_human_readable("1", 18) == "0.000000000000000001"
        assert AmountTransformer.to_human_readable("42", 0) == "42"

    def test_round_trip_within_decimals(self):
        """Test amounts representable in the token's decimals survive a round trip."""
        for amount in ["1", "1.5", "0.000001", "123456.789", "1000000000"]:
            raw = AmountTransformer.to_smallest_unit(amount, 18)
            assert AmountTransformer.to_human_readable(raw, 18) == amount

    def test_large_amounts_are_exact(self):
        """Test no floating point loss on large amounts."""
        raw = AmountTransformer.to_smallest_unit("123456789012345678.123456789012345678", 18)
        assert raw == "123456789012345678123456789012345678"
        assert AmountTransformer.from_raw_int(int(raw), 18) == "123456789012345678.123456789012345678"

    def test_invalid_amount_raises(self):
        """Test malformed amounts are rejected."""
        for amount in ["abc", "-1", "1e18", "", "1.2.3"]:
            with pytest.raises(InvalidRequest):
                AmountTransformer.to_smallest_unit(amount, 18)

    def test_invalid_raw_amount_raises(self):
        """Test non-integer raw amounts are rejected."""
        with pytest.raises(InvalidRequest):
            AmountTransformer.to_human_readable("1.5", 6)

    def test_normalize(self):
        """Test normalization strips exponents and trailing zeros."""
        assert AmountTransformer.normalize(Decimal("1.500")) == "1.5"
        assert AmountTransformer.normalize("10") == "10"
        assert AmountTransformer.normalize(Decimal("1E+2")) == "100"
        assert AmountTransformer.normalize(Decimal("0.000")) == "0"


class TestChainTransformer:
    """Tests for provider chain id mapping."""

    def test_to_provider(self, chains):
        """Test canonical ids map to each provider's scheme."""
        transformer = ChainTransformer(chains)
        assert transformer.to_provider(56, "lifi") == 56
        assert transformer.to_provider(56, "stargate") == 102
        assert transformer.to_provider(SOLANA_CHAIN_ID, "jupiter") == "solana"

    def test_unsupported_provider_chain(self, chains):
        """Test a provider without an id for the chain is unsupported."""
        transformer = ChainTransformer(chains)
        assert transformer.to_provider(SOLANA_CHAIN_ID, "oneinch") is None
        assert not transformer.is_supported(SOLANA_CHAIN_ID, "oneinch")
        assert transformer.to_provider(999999, "lifi") is None

    def test_from_provider(self, chains):
        """Test provider ids map back to canonical ids."""
        transformer = ChainTransformer(chains)
        assert transformer.from_provider(102, "stargate") == 56
        assert transformer.from_provider(1151111081099710, "lifi") == SOLANA_CHAIN_ID
        assert transformer.from_provider(123, "stargate") is None


class TestTokenTransformer:
    """Tests for token identifier mapping."""

    def test_evm_address_passthrough(self, chains):
        """Test EVM addresses are validated and passed through."""
        transformer = TokenTransformer(chains)
        address = "0x55d398326f99059fF775485246999027B3197955"
        assert transformer.to_provider(56, address, "lifi") == address

    def test_jupiter_native_sol(self, chains):
        """Test Jupiter receives the wrapped SOL mint for native SOL."""
        transformer = TokenTransformer(chains)
        assert transformer.to_provider(SOLANA_CHAIN_ID, SOLANA_NATIVE_ADDRESS, "jupiter") == WRAPPED_SOL_MINT
        assert transformer.to_provider(SOLANA_CHAIN_ID, SOLANA_NATIVE_ADDRESS, "lifi") == SOLANA_NATIVE_ADDRESS

    def test_invalid_addresses(self, chains):
        """Test addresses of the wrong family are rejected."""
        transformer = TokenTransformer(chains)
        with pytest.raises(InvalidRequest):
            transformer.to_provider(56, "So11111111111111111111111111111111111111112", "lifi")
        with pytest.raises(InvalidRequest):
            transformer.to_provider(SOLANA_CHAIN_ID, EVM_NATIVE_ADDRESS, "jupiter")

    def test_from_provider_lowercases_evm(self, chains):
        """Test EVM identifiers come back lowercase, Solana mints unchanged."""
        transformer = TokenTransformer(chains)
        assert transformer.from_provider(1, "0xABCDEF0000000000000000000000000000000000", "lifi") == (
            "0xabcdef0000000000000000000000000000000000"
        )
        assert transformer.from_provider(SOLANA_CHAIN_ID, WRAPPED_SOL_MINT, "jupiter") == WRAPPED_SOL_MINT


class TestSlippageTransformer:
    """Tests for slippage unit conversion."""

    def test_bps(self):
        """Test percent <-> basis points."""
        assert SlippageTransformer.to_bps(0.5) == 50
        assert SlippageTransformer.to_bps(30.5) == 3050
        assert SlippageTransformer.from_bps(50) == 0.5

    def test_fraction(self):
        """Test percent -> fraction."""
        assert SlippageTransformer.to_fraction(1.0) == 0.01

    def test_validity_and_clamp(self):
        """Test range checks and clamping."""
        assert SlippageTransformer.is_valid(0.5)
        assert not SlippageTransformer.is_valid(51)
        assert not SlippageTransformer.is_valid(0.05, minimum=0.1)
        assert SlippageTransformer.clamp(0.01, 0.1, 50) == 0.1
        assert SlippageTransformer.clamp(80, 0.1, 50) == 50
