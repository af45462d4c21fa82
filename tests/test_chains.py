"""Tests for the chain and token registries."""

from unittest.mock import AsyncMock

import pytest

from crossroute.chains import EVM_NATIVE_ADDRESS, SOLANA_CHAIN_ID, TokenCategory, TokenRegistry
from crossroute.errors import InvalidRequest

from factories import BSC, BSC_CAKE, BSC_ETH, BSC_USDT, ETH_USDC, TWC, WBNB


class TestChainRegistry:
    """Tests for ChainRegistry."""

    def test_supported_chains(self, chains):
        """Test the EVM chains and Solana are supported."""
        for chain_id in (1, 56, 137, 42161, 10, 8453, 43114, SOLANA_CHAIN_ID):
            assert chains.is_supported(chain_id)
        assert not chains.is_supported(999999)

    def test_unknown_chain_raises(self, chains):
        """Test looking up an unsupported chain raises InvalidRequest."""
        with pytest.raises(InvalidRequest) as exc_info:
            chains.get_canonical_chain(999999)
        assert exc_info.value.details["chain_id"] == 999999

    def test_address_validation(self, chains):
        """Test address format is checked per chain family."""
        assert chains.is_valid_address(BSC, BSC_USDT)
        assert not chains.is_valid_address(BSC, "0x1234")
        assert chains.is_valid_address(SOLANA_CHAIN_ID, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
        assert not chains.is_valid_address(SOLANA_CHAIN_ID, BSC_USDT)

    def test_native_maps_to_wrapped_in_graph(self, chains):
        """Test the native placeholder maps to the wrapped native token."""
        assert chains.is_native(BSC, EVM_NATIVE_ADDRESS)
        assert chains.to_graph_address(BSC, EVM_NATIVE_ADDRESS) == WBNB
        assert chains.to_graph_address(BSC, BSC_USDT.upper().replace("0X", "0x")) == BSC_USDT

    def test_classify_token(self, chains):
        """Test token categories used for intermediary selection."""
        assert chains.classify_token(BSC, WBNB) == TokenCategory.NATIVE
        assert chains.classify_token(BSC, BSC_USDT) == TokenCategory.STABLE
        assert chains.classify_token(BSC, BSC_ETH) == TokenCategory.BLUECHIP
        assert chains.classify_token(BSC, BSC_CAKE) == TokenCategory.OTHER
        assert chains.classify_token(BSC, TWC) == TokenCategory.OTHER

    def test_token_by_symbol(self, chains):
        """Test symbol lookup includes the wrapped native token."""
        bsc = chains.get_canonical_chain(BSC)
        assert bsc.token_by_symbol("wbnb").address.lower() == WBNB
        assert bsc.token_by_symbol("USDT").address.lower() == BSC_USDT
        assert bsc.token_by_symbol("DOGE") is None


class TestTokenRegistry:
    """Tests for TokenRegistry."""

    @pytest.mark.asyncio
    async def test_static_decimals(self, chains):
        """Test decimals come from the static table first."""
        registry = TokenRegistry(chains)
        assert await registry.get_decimals(BSC, BSC_USDT) == 18
        assert await registry.get_decimals(1, ETH_USDC) == 6
        assert await registry.get_decimals(BSC, EVM_NATIVE_ADDRESS) == 18

    @pytest.mark.asyncio
    async def test_discovered_token(self, tokens):
        """Test registered tokens are found."""
        assert await tokens.get_decimals(BSC, TWC) == 18
        assert tokens.get_symbol(BSC, TWC) == "TWC"

    @pytest.mark.asyncio
    async def test_unknown_token_without_rpc(self, chains):
        """Test an unknown token without RPC raises InvalidRequest."""
        registry = TokenRegistry(chains)
        with pytest.raises(InvalidRequest):
            await registry.get_decimals(BSC, "0x" + "12" * 20)

    @pytest.mark.asyncio
    async def test_unknown_token_via_rpc(self, chains):
        """Test decimals are read over RPC and remembered."""
        rpc = AsyncMock()
        rpc.get_decimals.return_value = 9
        registry = TokenRegistry(chains, rpc=rpc)
        address = "0x" + "12" * 20

        assert await registry.get_decimals(BSC, address) == 9
        assert await registry.get_decimals(BSC, address) == 9
        rpc.get_decimals.assert_awaited_once_with(BSC, address)
