"""Jupiter DEX aggregator adapter for Solana.

Uses the Jupiter quote API.
API docs: https://station.jup.ag/docs/apis/swap-api
"""

import logging
from decimal import Decimal
from typing import Optional

from crossroute.chains import SOLANA_CHAIN_ID, TokenRegistry
from crossroute.errors import ProviderUnavailable
from crossroute.gas import GasEstimator
from crossroute.routing.base import (
    FeeBreakdown,
    ProviderAdapter,
    RouterParams,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
    new_route_id,
    route_expiry,
)
from crossroute.routing.transformers import (
    AmountTransformer,
    ChainTransformer,
    SlippageTransformer,
    TokenTransformer,
)

logger = logging.getLogger(__name__)

# Jupiter API endpoints
JUPITER_API_V6 = "https://quote-api.jup.ag/v6"

SIGNATURE_FEE_LAMPORTS = 5000
LAMPORTS_PER_SOL = Decimal(10**9)

SOLANA_CONFIRMATION_SECONDS = 2

MIN_SLIPPAGE = 0.1
MAX_SLIPPAGE = 50.0


class JupiterAdapter(ProviderAdapter):
    """Jupiter aggregator provider for Solana.

    Jupiter aggregates liquidity from Raydium, Orca and other Solana
    DEXes; every entry of its route plan becomes one swap step.
    """

    provider_key = "jupiter"

    def __init__(
        self,
        api_key: Optional[str] = None,
        tokens: Optional[TokenRegistry] = None,
        gas: Optional[GasEstimator] = None,
        quote_ttl_seconds: int = 60,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.tokens = tokens or TokenRegistry()
        self.gas = gas or GasEstimator(chains=self.tokens.chains)
        self.quote_ttl_seconds = quote_ttl_seconds
        self.base_url = JUPITER_API_V6
        self.chain_transformer = ChainTransformer(self.tokens.chains)
        self.token_transformer = TokenTransformer(self.tokens.chains)

    @property
    def name(self) -> str:
        return "Jupiter"

    def supports_chain(self, chain_id: int) -> bool:
        return chain_id == SOLANA_CHAIN_ID

    def get_priority(self) -> int:
        return 3

    def _get_headers(self) -> dict:
        """Get API headers."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _fetch_route(self, params: RouterParams) -> Optional[RouterRoute]:
        if params.is_cross_chain or not self.supports_chain(params.from_chain):
            return None

        input_mint = self.token_transformer.to_provider(params.from_chain, params.from_token, self.provider_key)
        output_mint = self.token_transformer.to_provider(params.to_chain, params.to_token, self.provider_key)
        from_decimals = await self.tokens.get_decimals(params.from_chain, params.from_token)
        to_decimals = await self.tokens.get_decimals(params.to_chain, params.to_token)
        amount_raw = AmountTransformer.to_smallest_unit(params.amount, from_decimals)

        slippage = SlippageTransformer.clamp(params.slippage, MIN_SLIPPAGE, MAX_SLIPPAGE)

        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}/quote",
                headers=self._get_headers(),
                params={
                    "inputMint": input_mint,
                    "outputMint": output_mint,
                    "amount": amount_raw,
                    "slippageBps": str(SlippageTransformer.to_bps(slippage)),
                    "onlyDirectRoutes": "false",
                },
            )

        if response.status_code == 400:
            logger.debug(f"Jupiter has no route: {response.text}")
            return None
        if response.status_code != 200:
            raise ProviderUnavailable(self.name, f"API error {response.status_code}")

        data = response.json()
        out_amount = str(data.get("outAmount", "0"))
        if out_amount == "0":
            return None

        from_token = TokenAmount(
            params.from_chain, params.from_token, AmountTransformer.normalize(params.amount),
            self.tokens.get_symbol(params.from_chain, params.from_token), from_decimals,
        )
        to_token = TokenAmount(
            params.to_chain, params.to_token, AmountTransformer.to_human_readable(out_amount, to_decimals),
            self.tokens.get_symbol(params.to_chain, params.to_token), to_decimals,
        )

        steps = []
        for step in data.get("routePlan", []):
            swap_info = step.get("swapInfo", {})
            in_mint = swap_info.get("inputMint", input_mint)
            out_mint = swap_info.get("outputMint", output_mint)
            in_info = self.tokens.lookup(SOLANA_CHAIN_ID, in_mint)
            out_info = self.tokens.lookup(SOLANA_CHAIN_ID, out_mint)
            steps.append(
                RouteStep(
                    type=StepType.SWAP,
                    chain_id=SOLANA_CHAIN_ID,
                    from_token=TokenAmount(
                        SOLANA_CHAIN_ID, in_mint,
                        self._step_amount(swap_info.get("inAmount"), in_info),
                        in_info.symbol if in_info else None,
                        in_info.decimals if in_info else None,
                    ),
                    to_token=TokenAmount(
                        SOLANA_CHAIN_ID, out_mint,
                        self._step_amount(swap_info.get("outAmount"), out_info),
                        out_info.symbol if out_info else None,
                        out_info.decimals if out_info else None,
                    ),
                    venue=swap_info.get("label", "Unknown"),
                    details={"ammKey": swap_info.get("ammKey"), "percent": step.get("percent")},
                )
            )
        if not steps:
            steps.append(RouteStep(StepType.SWAP, SOLANA_CHAIN_ID, from_token, to_token, venue="Jupiter"))

        # Jupiter does not quote transaction fees; signature and priority fees are added here
        priority_lamports = int(data.get("prioritizationFeeLamports") or 0)
        gas_native = Decimal(SIGNATURE_FEE_LAMPORTS + priority_lamports) / LAMPORTS_PER_SOL
        gas_usd = await self.gas.native_to_usd(SOLANA_CHAIN_ID, gas_native)

        price_impact = abs(float(data.get("priceImpactPct") or 0)) * 100
        return RouterRoute(
            provider=self.name,
            route_id=new_route_id("jupiter"),
            from_token=from_token,
            to_token=to_token,
            steps=steps,
            exchange_rate=to_token.value / from_token.value,
            price_impact=price_impact,
            slippage=SlippageTransformer.from_bps(int(data.get("slippageBps") or SlippageTransformer.to_bps(slippage))),
            fees=FeeBreakdown(
                gas_native=gas_native,
                gas_usd=gas_usd or Decimal("0"),
                total_usd=gas_usd or Decimal("0"),
                gas_estimated=True,
            ),
            estimated_time=SOLANA_CONFIRMATION_SECONDS,
            expires_at=route_expiry(self.quote_ttl_seconds),
            raw=data,
        )

    @staticmethod
    def _step_amount(raw, info) -> str:
        if raw is None:
            return "0"
        if info is None:
            return str(raw)
        return AmountTransformer.to_human_readable(str(raw), info.decimals)
