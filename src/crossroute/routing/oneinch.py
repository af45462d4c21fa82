"""1inch DEX aggregator adapter.

Uses the 1inch Swap API quote endpoint on EVM chains.
API docs: https://portal.1inch.dev/documentation/apis/swap/introduction
"""

import logging
from decimal import Decimal
from typing import Optional

from crossroute.chains import EVM_NATIVE_ADDRESS, TokenRegistry
from crossroute.errors import ProviderUnavailable
from crossroute.gas import GasEstimator
from crossroute.prices import PriceOracle
from crossroute.routing.base import (
    FeeBreakdown,
    IMPACT_FROM_USD,
    IMPACT_UNKNOWN,
    ProviderAdapter,
    RouterParams,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
    new_route_id,
    route_expiry,
)
from crossroute.routing.transformers import AmountTransformer, ChainTransformer, TokenTransformer

logger = logging.getLogger(__name__)

# 1inch API endpoints
ONEINCH_API_V6 = "https://api.1inch.dev/swap/v6.0"

# 1inch expects this placeholder for the native currency
ONEINCH_NATIVE = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class OneInchAdapter(ProviderAdapter):
    """1inch aggregator: same-chain swaps on EVM chains, reports gas units."""

    provider_key = "oneinch"

    def __init__(
        self,
        api_key: Optional[str] = None,
        tokens: Optional[TokenRegistry] = None,
        gas: Optional[GasEstimator] = None,
        prices: Optional[PriceOracle] = None,
        quote_ttl_seconds: int = 60,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.tokens = tokens or TokenRegistry()
        self.gas = gas or GasEstimator(chains=self.tokens.chains)
        self.prices = prices if prices is not None else self.gas.prices
        self.quote_ttl_seconds = quote_ttl_seconds
        self.chain_transformer = ChainTransformer(self.tokens.chains)
        self.token_transformer = TokenTransformer(self.tokens.chains)

    @property
    def name(self) -> str:
        return "1inch"

    def supports_chain(self, chain_id: int) -> bool:
        return self.chain_transformer.is_supported(chain_id, self.provider_key)

    def get_priority(self) -> int:
        return 2

    def _get_headers(self) -> dict:
        """Get API headers with authorization."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _token_param(self, chain_id: int, address: str) -> str:
        if address.lower() == EVM_NATIVE_ADDRESS:
            return ONEINCH_NATIVE
        return self.token_transformer.to_provider(chain_id, address, self.provider_key)

    async def _fetch_route(self, params: RouterParams) -> Optional[RouterRoute]:
        chain_id = self.chain_transformer.to_provider(params.from_chain, self.provider_key)
        if chain_id is None or params.is_cross_chain:
            return None

        src = self._token_param(params.from_chain, params.from_token)
        dst = self._token_param(params.to_chain, params.to_token)
        from_decimals = await self.tokens.get_decimals(params.from_chain, params.from_token)
        to_decimals = await self.tokens.get_decimals(params.to_chain, params.to_token)
        amount_raw = AmountTransformer.to_smallest_unit(params.amount, from_decimals)

        async with self._client() as client:
            response = await client.get(
                f"{ONEINCH_API_V6}/{chain_id}/quote",
                headers=self._get_headers(),
                params={
                    "src": src,
                    "dst": dst,
                    "amount": amount_raw,
                    "includeGas": "true",
                    "includeProtocols": "true",
                },
            )

        if response.status_code == 400:
            logger.debug(f"1inch has no route: {response.text}")
            return None
        if response.status_code != 200:
            raise ProviderUnavailable(self.name, f"API error {response.status_code}")

        data = response.json()
        to_amount_raw = str(data.get("dstAmount") or data.get("toAmount") or "0")
        if to_amount_raw == "0":
            return None

        to_amount = AmountTransformer.to_human_readable(to_amount_raw, to_decimals)

        reported_gas = data.get("gas")
        gas = await self.gas.estimate(
            params.from_chain,
            gas_units=int(reported_gas) if reported_gas else None,
        )

        from_token = TokenAmount(
            params.from_chain, params.from_token, AmountTransformer.normalize(params.amount),
            self.tokens.get_symbol(params.from_chain, params.from_token), from_decimals,
        )
        to_token = TokenAmount(
            params.to_chain, params.to_token, to_amount,
            self.tokens.get_symbol(params.to_chain, params.to_token), to_decimals,
        )
        protocols = [
            hop.get("name")
            for route in data.get("protocols") or []
            for part in route
            for hop in part
            if isinstance(hop, dict)
        ]
        chain = self.tokens.chains.get_canonical_chain(params.from_chain)
        price_impact = await self._estimate_price_impact(from_token, to_token)

        return RouterRoute(
            provider=self.name,
            route_id=new_route_id("1inch"),
            from_token=from_token,
            to_token=to_token,
            steps=[
                RouteStep(
                    type=StepType.SWAP,
                    chain_id=params.from_chain,
                    from_token=from_token,
                    to_token=to_token,
                    venue="1inch",
                    details={"protocols": protocols},
                )
            ],
            exchange_rate=to_token.value / from_token.value,
            price_impact=price_impact if price_impact is not None else 0.0,
            slippage=params.slippage,
            fees=FeeBreakdown(
                gas_native=gas.gas_native,
                gas_usd=gas.gas_usd,
                total_usd=gas.gas_usd,
                gas_estimated=gas.estimated,
            ),
            estimated_time=max(int(chain.block_time_seconds * 2), 1),
            expires_at=route_expiry(self.quote_ttl_seconds),
            raw=data,
            price_impact_source=IMPACT_FROM_USD if price_impact is not None else IMPACT_UNKNOWN,
        )

    async def _estimate_price_impact(self, from_token: TokenAmount, to_token: TokenAmount) -> Optional[float]:
        """Loss between the USD value sent and received, in percent.

        The quote endpoint reports no impact. Returns None when either side
        cannot be priced.
        """
        if self.prices is None:
            return None
        price_in = await self.prices.get_price_usd(from_token.chain_id, from_token.address)
        price_out = await self.prices.get_price_usd(to_token.chain_id, to_token.address)
        if not price_in or not price_out:
            return None
        value_in = from_token.value * price_in
        if value_in <= 0:
            return None
        value_out = to_token.value * price_out
        return float(max(Decimal(1) - value_out / value_in, Decimal(0)) * 100)
