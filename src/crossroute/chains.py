"""Canonical chain registry and token metadata.

Maps the internal chain id (EVM chain id, or a fixed id for non-EVM
chains) to every provider's native chain identifier, and carries the
per-chain constants the router needs: wrapped native token, well-known
stablecoins and blue-chips, the default AMM venue and fallback gas data.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Optional, Union

from crossroute.errors import InvalidRequest

logger = logging.getLogger(__name__)

ProviderChainId = Union[int, str]

SOLANA_CHAIN_ID = 7565164

# Placeholder addresses providers use for the native currency
EVM_NATIVE_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
SOLANA_NATIVE_ADDRESS = "11111111111111111111111111111111"

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

STABLECOIN_SYMBOLS = {"USDC", "USDT", "DAI", "BUSD", "FRAX", "USDP", "FDUSD"}
BLUECHIP_SYMBOLS = {"WBTC", "WETH", "ETH", "BTC", "BTCB"}

GWEI = 10**9


class TokenCategory(str, Enum):
    """Coarse token category used for intermediary selection."""

    NATIVE = "native"
    STABLE = "stable"
    BLUECHIP = "bluechip"
    OTHER = "other"


@dataclass(frozen=True)
class TokenInfo:
    """Static metadata for a well-known token."""

    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class CanonicalChain:
    """Immutable description of one supported chain."""

    chain_id: int
    name: str
    family: str  # "evm" or "solana"
    native_symbol: str
    native_decimals: int
    wrapped_native: TokenInfo
    provider_ids: dict = field(default_factory=dict)
    tokens: tuple = ()  # TokenInfo entries, wrapped native excluded
    dex_name: Optional[str] = None
    dex_fee_bps: int = 30
    factory_address: Optional[str] = None
    router_address: Optional[str] = None
    subgraph_url: Optional[str] = None
    gas_price_wei: int = 20 * GWEI
    gas_limit: int = 150_000
    block_time_seconds: float = 12.0

    @property
    def is_evm(self) -> bool:
        return self.family == "evm"

    @property
    def native_address(self) -> str:
        return EVM_NATIVE_ADDRESS if self.is_evm else SOLANA_NATIVE_ADDRESS

    def token_by_symbol(self, symbol: str) -> Optional[TokenInfo]:
        symbol = symbol.upper()
        if self.wrapped_native.symbol == symbol:
            return self.wrapped_native
        for token in self.tokens:
            if token.symbol == symbol:
                return token
        return None

    @property
    def stablecoins(self) -> list[TokenInfo]:
        return [t for t in self.tokens if t.symbol in STABLECOIN_SYMBOLS]

    @property
    def bluechips(self) -> list[TokenInfo]:
        return [t for t in self.tokens if t.symbol in BLUECHIP_SYMBOLS]


def _t(symbol: str, address: str, decimals: int = 18) -> TokenInfo:
    return TokenInfo(symbol=symbol, address=address, decimals=decimals)


# ======================
# Chain Configurations
# ======================

CHAINS: dict[int, CanonicalChain] = {
    1: CanonicalChain(
        chain_id=1,
        name="Ethereum",
        family="evm",
        native_symbol="ETH",
        native_decimals=18,
        wrapped_native=_t("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
        provider_ids={"lifi": 1, "oneinch": 1, "socket": 1, "stargate": 101},
        tokens=(
            _t("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
            _t("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
            _t("DAI", "0x6B175474E89094C44Da98b954EedcdeCB5BE3830"),
            _t("FRAX", "0x853d955aCEf822Db058eb8505911ED77F175b99e"),
            _t("WBTC", "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8),
            _t("LINK", "0x514910771AF9Ca656af840dff83E8264EcF986CA"),
            _t("UNI", "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984"),
        ),
        dex_name="uniswap",
        dex_fee_bps=30,
        factory_address="0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f",
        router_address="0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
        subgraph_url="https://api.thegraph.com/subgraphs/name/uniswap/uniswap-v2",
        gas_price_wei=20 * GWEI,
        gas_limit=150_000,
        block_time_seconds=12.0,
    ),
    56: CanonicalChain(
        chain_id=56,
        name="BNB Smart Chain",
        family="evm",
        native_symbol="BNB",
        native_decimals=18,
        wrapped_native=_t("WBNB", "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"),
        provider_ids={"lifi": 56, "oneinch": 56, "socket": 56, "stargate": 102},
        tokens=(
            _t("USDT", "0x55d398326f99059fF775485246999027B3197955"),
            _t("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d"),
            _t("BUSD", "0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56"),
            _t("FDUSD", "0xc5f0f7b66764F6ec8C8Dff7BA683102295E16409"),
            _t("ETH", "0x2170Ed0880ac9A755fd29B2688956BD959F933F8"),
            _t("BTCB", "0x7130d2A12B9BCbFAe4f2634d864A1Ee1Ce3Ead9c"),
            _t("CAKE", "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"),
        ),
        dex_name="pancakeswap",
        dex_fee_bps=25,
        factory_address="0xcA143Ce32Fe78f1f7019d7d551a6402fC5350c73",
        router_address="0x10ED43C718714eb63d5aA57B78B54704E256024E",
        subgraph_url="https://api.thegraph.com/subgraphs/name/pancakeswap/exchange-v2-bsc",
        gas_price_wei=3 * GWEI,
        gas_limit=200_000,
        block_time_seconds=3.0,
    ),
    137: CanonicalChain(
        chain_id=137,
        name="Polygon",
        family="evm",
        native_symbol="MATIC",
        native_decimals=18,
        wrapped_native=_t("WMATIC", "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270"),
        provider_ids={"lifi": 137, "oneinch": 137, "socket": 137, "stargate": 109},
        tokens=(
            _t("USDC", "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", 6),
            _t("USDT", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
            _t("DAI", "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063"),
            _t("WETH", "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"),
            _t("WBTC", "0x1BFD67037B42Cf73acF2047067bd4F2C47D9BfD6", 8),
        ),
        dex_name="quickswap",
        dex_fee_bps=30,
        factory_address="0x5757371414417b8C6CAad45bAeF941aBc7d3Ab32",
        router_address="0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff",
        subgraph_url="https://api.thegraph.com/subgraphs/name/sameepsi/quickswap06",
        gas_price_wei=30 * GWEI,
        gas_limit=200_000,
        block_time_seconds=2.0,
    ),
    42161: CanonicalChain(
        chain_id=42161,
        name="Arbitrum One",
        family="evm",
        native_symbol="ETH",
        native_decimals=18,
        wrapped_native=_t("WETH", "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"),
        provider_ids={"lifi": 42161, "oneinch": 42161, "socket": 42161, "stargate": 110},
        tokens=(
            _t("USDC", "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", 6),
            _t("USDT", "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", 6),
            _t("DAI", "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1"),
            _t("WBTC", "0x2f2a2543B76A4166549F7aaB2e75Bef0aefC5B0f", 8),
        ),
        dex_name="uniswap",
        dex_fee_bps=30,
        factory_address="0xf1D7CC64Fb4452F05c498126312eBE29f30Fbcf9",
        router_address="0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
        gas_price_wei=GWEI // 10,
        gas_limit=150_000,
        block_time_seconds=0.25,
    ),
    10: CanonicalChain(
        chain_id=10,
        name="Optimism",
        family="evm",
        native_symbol="ETH",
        native_decimals=18,
        wrapped_native=_t("WETH", "0x4200000000000000000000000000000000000006"),
        provider_ids={"lifi": 10, "oneinch": 10, "socket": 10, "stargate": 111},
        tokens=(
            _t("USDC", "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85", 6),
            _t("USDT", "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58", 6),
            _t("DAI", "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1"),
            _t("WBTC", "0x68f180fcCe6836688e9084f035309E29Bf0A2095", 8),
        ),
        dex_name="uniswap",
        dex_fee_bps=30,
        factory_address="0x0c3c1c532F1e39EdF36BE9Fe0bE1410313E074Bf",
        router_address="0x4A7b5Da61326A6379179b40d00F57E5bbDC962c2",
        gas_price_wei=GWEI // 1000,
        gas_limit=150_000,
        block_time_seconds=2.0,
    ),
    8453: CanonicalChain(
        chain_id=8453,
        name="Base",
        family="evm",
        native_symbol="ETH",
        native_decimals=18,
        wrapped_native=_t("WETH", "0x4200000000000000000000000000000000000006"),
        provider_ids={"lifi": 8453, "oneinch": 8453, "socket": 8453, "stargate": 184},
        tokens=(
            _t("USDC", "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6),
            _t("DAI", "0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb"),
        ),
        dex_name="uniswap",
        dex_fee_bps=30,
        factory_address="0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6",
        router_address="0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
        gas_price_wei=GWEI // 1000,
        gas_limit=150_000,
        block_time_seconds=2.0,
    ),
    43114: CanonicalChain(
        chain_id=43114,
        name="Avalanche",
        family="evm",
        native_symbol="AVAX",
        native_decimals=18,
        wrapped_native=_t("WAVAX", "0xB31f66AA3C1e785363F0875A1B74E27b85FD66c7"),
        provider_ids={"lifi": 43114, "oneinch": 43114, "socket": 43114, "stargate": 106},
        tokens=(
            _t("USDC", "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E", 6),
            _t("USDT", "0x9702230A8Ea53601f5cD2dc00fDBc13d4dF4A8c7", 6),
            _t("WETH", "0x49D5c2BdFfac6CE2BFdB6640F4F80f226bc10bAB"),
        ),
        dex_name="traderjoe",
        dex_fee_bps=30,
        factory_address="0x9Ad6C38BE94206cA50bb0d90783181662f0Cfa10",
        router_address="0x60aE616a2155Ee3d9A68541Ba4544862310933d4",
        gas_price_wei=25 * GWEI,
        gas_limit=200_000,
        block_time_seconds=2.0,
    ),
    SOLANA_CHAIN_ID: CanonicalChain(
        chain_id=SOLANA_CHAIN_ID,
        name="Solana",
        family="solana",
        native_symbol="SOL",
        native_decimals=9,
        wrapped_native=_t("SOL", "So11111111111111111111111111111111111111112", 9),
        provider_ids={"lifi": 1151111081099710, "jupiter": "solana", "socket": None},
        tokens=(
            _t("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
            _t("USDT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
        ),
        gas_price_wei=5000,  # lamports per signature
        gas_limit=1,
        block_time_seconds=0.4,
    ),
}


class ChainRegistry:
    """Read-only lookup over the canonical chain table."""

    def __init__(self, chains: Optional[dict[int, CanonicalChain]] = None):
        self._chains = chains if chains is not None else CHAINS

    def is_supported(self, chain_id: int) -> bool:
        return chain_id in self._chains

    def get_canonical_chain(self, chain_id: int) -> CanonicalChain:
        chain = self._chains.get(chain_id)
        if chain is None:
            raise InvalidRequest(f"Unsupported chain: {chain_id}", {"chain_id": chain_id})
        return chain

    def get_provider_chain_id(self, chain_id: int, provider: str) -> Optional[ProviderChainId]:
        """Return the provider's identifier for a chain, or None if unsupported."""
        chain = self._chains.get(chain_id)
        if chain is None:
            return None
        return chain.provider_ids.get(provider.lower())

    def from_provider_chain_id(self, provider_chain_id: ProviderChainId, provider: str) -> Optional[int]:
        provider = provider.lower()
        for chain in self._chains.values():
            if chain.provider_ids.get(provider) == provider_chain_id:
                return chain.chain_id
        return None

    def all_chains(self) -> list[CanonicalChain]:
        return list(self._chains.values())

    def is_valid_address(self, chain_id: int, address: str) -> bool:
        chain = self.get_canonical_chain(chain_id)
        if chain.is_evm:
            return bool(EVM_ADDRESS_RE.match(address))
        return bool(SOLANA_ADDRESS_RE.match(address))

    def is_native(self, chain_id: int, address: str) -> bool:
        chain = self.get_canonical_chain(chain_id)
        return address.lower() == chain.native_address.lower()

    def to_graph_address(self, chain_id: int, address: str) -> str:
        """Normalize an address for graph lookups (native maps to wrapped native)."""
        chain = self.get_canonical_chain(chain_id)
        if self.is_native(chain_id, address):
            address = chain.wrapped_native.address
        return address.lower() if chain.is_evm else address

    def classify_token(self, chain_id: int, address: str) -> TokenCategory:
        chain = self._chains.get(chain_id)
        if chain is None:
            return TokenCategory.OTHER
        address = address.lower()
        if address in (chain.wrapped_native.address.lower(), chain.native_address.lower()):
            return TokenCategory.NATIVE
        for token in chain.tokens:
            if token.address.lower() == address:
                if token.symbol in STABLECOIN_SYMBOLS:
                    return TokenCategory.STABLE
                if token.symbol in BLUECHIP_SYMBOLS:
                    return TokenCategory.BLUECHIP
                break
        return TokenCategory.OTHER

    def find_token(self, chain_id: int, address: str) -> Optional[TokenInfo]:
        chain = self._chains.get(chain_id)
        if chain is None:
            return None
        address = address.lower()
        if address == chain.native_address.lower():
            return TokenInfo(chain.native_symbol, chain.native_address, chain.native_decimals)
        for token in (chain.wrapped_native, *chain.tokens):
            if token.address.lower() == address:
                return token
        return None


class TokenRegistry:
    """Token metadata lookup: static table, discovered tokens, then chain RPC."""

    def __init__(self, chains: Optional[ChainRegistry] = None, rpc=None):
        self.chains = chains or get_chain_registry()
        self.rpc = rpc
        self._discovered: dict[tuple[int, str], TokenInfo] = {}

    def register(self, chain_id: int, address: str, symbol: str, decimals: int) -> None:
        """Remember metadata learned from an indexer or an RPC call."""
        self._discovered[(chain_id, address.lower())] = TokenInfo(symbol, address, decimals)

    def lookup(self, chain_id: int, address: str) -> Optional[TokenInfo]:
        known = self.chains.find_token(chain_id, address)
        if known:
            return known
        return self._discovered.get((chain_id, address.lower()))

    def get_symbol(self, chain_id: int, address: str) -> str:
        info = self.lookup(chain_id, address)
        return info.symbol if info else address[:8]

    async def get_decimals(self, chain_id: int, address: str) -> int:
        info = self.lookup(chain_id, address)
        if info:
            return info.decimals

        chain = self.chains.get_canonical_chain(chain_id)
        if self.rpc is not None and chain.is_evm:
            decimals = await self.rpc.get_decimals(chain_id, address)
            if decimals is not None:
                self.register(chain_id, address, address[:8], decimals)
                return decimals

        raise InvalidRequest(
            f"Unknown token {address} on chain {chain_id}",
            {"chain_id": chain_id, "address": address},
        )


@lru_cache
def get_chain_registry() -> ChainRegistry:
    """Get the shared chain registry."""
    return ChainRegistry()
