"""Gas cost estimation for routes whose source does not report gas."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from crossroute.chains import ChainRegistry, get_chain_registry
from crossroute.prices import PriceOracle
from crossroute.rpc import ChainRpcClient, RpcError

logger = logging.getLogger(__name__)

DEFAULT_GAS_PER_HOP = 150_000


@dataclass
class GasEstimate:
    """Gas cost of a route. ``estimated`` is True when any input fell back to a default."""

    gas_units: int
    gas_price_wei: int
    gas_native: Decimal
    gas_usd: Decimal
    estimated: bool


class GasEstimator:
    """Estimates gas via RPC and falls back to conservative chain defaults."""

    def __init__(
        self,
        rpc: Optional[ChainRpcClient] = None,
        prices: Optional[PriceOracle] = None,
        chains: Optional[ChainRegistry] = None,
        gas_per_hop: int = DEFAULT_GAS_PER_HOP,
    ):
        self.rpc = rpc
        self.prices = prices
        self.chains = chains or get_chain_registry()
        self.gas_per_hop = gas_per_hop

    async def get_gas_price(self, chain_id: int) -> tuple[int, bool]:
        """Return ``(gas_price_wei, estimated)``."""
        chain = self.chains.get_canonical_chain(chain_id)
        if self.rpc is not None and chain.is_evm:
            try:
                return await self.rpc.get_gas_price(chain_id), False
            except (RpcError, httpx.HTTPError, ValueError) as e:
                logger.debug(f"eth_gasPrice failed on chain {chain_id}: {e}")
        return chain.gas_price_wei, True

    def default_gas_units(self, chain_id: int, hops: int = 1) -> int:
        chain = self.chains.get_canonical_chain(chain_id)
        return max(chain.gas_limit, self.gas_per_hop * max(hops, 1))

    async def estimate(
        self,
        chain_id: int,
        hops: int = 1,
        gas_units: Optional[int] = None,
        tx: Optional[dict] = None,
    ) -> GasEstimate:
        """Estimate the gas cost of a swap.

        Args:
            chain_id: Chain the transaction runs on
            hops: Number of swap hops, used for the default gas limit
            gas_units: Gas reported by the source, if any
            tx: Transaction to simulate with eth_estimateGas, if any
        """
        chain = self.chains.get_canonical_chain(chain_id)
        estimated = False

        if gas_units is None and tx is not None and self.rpc is not None and chain.is_evm:
            try:
                gas_units = await self.rpc.estimate_gas(chain_id, tx)
            except (RpcError, httpx.HTTPError, ValueError) as e:
                logger.debug(f"eth_estimateGas failed on chain {chain_id}: {e}")

        if gas_units is None:
            gas_units = self.default_gas_units(chain_id, hops)
            estimated = True

        if chain.is_evm:
            gas_price, price_estimated = await self.get_gas_price(chain_id)
            estimated = estimated or price_estimated
        else:
            # lamports per signature, one signature per transaction
            gas_price = chain.gas_price_wei
            gas_units = 1

        gas_native = Decimal(gas_units * gas_price) / Decimal(10**chain.native_decimals)
        gas_usd = Decimal("0")
        native_price = None
        if self.prices is not None:
            native_price = await self.prices.get_price_usd(chain_id, chain.wrapped_native.address)
        if native_price is not None:
            gas_usd = gas_native * native_price
        else:
            estimated = True

        return GasEstimate(
            gas_units=gas_units,
            gas_price_wei=gas_price,
            gas_native=gas_native,
            gas_usd=gas_usd,
            estimated=estimated,
        )

    async def native_to_usd(self, chain_id: int, amount_native: Decimal) -> Optional[Decimal]:
        if self.prices is None:
            return None
        chain = self.chains.get_canonical_chain(chain_id)
        price = await self.prices.get_price_usd(chain_id, chain.wrapped_native.address)
        return amount_native * price if price is not None else None
