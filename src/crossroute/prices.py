"""USD price lookups used for liquidity, fee and gas valuation."""

import logging
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

import httpx

from crossroute.chains import STABLECOIN_SYMBOLS, ChainRegistry, get_chain_registry

logger = logging.getLogger(__name__)

COINGECKO_API = "https://api.coingecko.com/api/v3"

# CoinGecko asset platform per chain
COINGECKO_PLATFORMS = {
    1: "ethereum",
    56: "binance-smart-chain",
    137: "polygon-pos",
    42161: "arbitrum-one",
    10: "optimistic-ethereum",
    8453: "base",
    43114: "avalanche",
    7565164: "solana",
}

PRICE_CACHE_SECONDS = 60


class PriceOracle(ABC):
    """Read-only USD price lookup."""

    @abstractmethod
    async def get_price_usd(self, chain_id: int, address: str) -> Optional[Decimal]:
        """USD price of one whole token, or None when unknown."""
        pass


class StaticPriceOracle(PriceOracle):
    """Fixed price table keyed by (chain_id, lowercase address)."""

    def __init__(self, prices: Optional[dict[tuple[int, str], Decimal]] = None):
        self._prices = {(c, a.lower()): Decimal(p) for (c, a), p in (prices or {}).items()}

    def set_price(self, chain_id: int, address: str, price) -> None:
        self._prices[(chain_id, address.lower())] = Decimal(price)

    async def get_price_usd(self, chain_id: int, address: str) -> Optional[Decimal]:
        return self._prices.get((chain_id, address.lower()))


class CoinGeckoPriceOracle(PriceOracle):
    """Token prices from the CoinGecko ``simple/token_price`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        chains: Optional[ChainRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.chains = chains or get_chain_registry()
        self._transport = transport
        self._cache: dict[tuple[int, str], tuple[float, Decimal]] = {}

    async def get_price_usd(self, chain_id: int, address: str) -> Optional[Decimal]:
        token = self.chains.find_token(chain_id, address)
        if token and token.symbol in STABLECOIN_SYMBOLS:
            return Decimal("1")

        chain = self.chains.get_canonical_chain(chain_id)
        if self.chains.is_native(chain_id, address):
            address = chain.wrapped_native.address

        key = (chain_id, address.lower())
        cached = self._cache.get(key)
        if cached and time.time() - cached[0] < PRICE_CACHE_SECONDS:
            return cached[1]

        platform = COINGECKO_PLATFORMS.get(chain_id)
        if not platform:
            return None

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.get(
                    f"{COINGECKO_API}/simple/token_price/{platform}",
                    headers=headers,
                    params={"contract_addresses": address, "vs_currencies": "usd"},
                )
        except httpx.HTTPError as e:
            logger.warning(f"CoinGecko price fetch failed for {address}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"CoinGecko returned {response.status_code} for {address}")
            return None

        data = response.json()
        entry = data.get(address.lower()) or data.get(address) or {}
        price = entry.get("usd")
        if price is None:
            return None

        price_decimal = Decimal(str(price))
        self._cache[key] = (time.time(), price_decimal)
        return price_decimal
