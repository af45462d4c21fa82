"""LI.FI adapter: same-chain and cross-chain quotes across EVM chains and Solana.

API docs: https://docs.li.fi/li.fi-api/li.fi-api/requesting-a-quote
"""

import logging
from decimal import Decimal
from typing import Optional

from crossroute.chains import SOLANA_CHAIN_ID, SOLANA_NATIVE_ADDRESS, TokenRegistry
from crossroute.errors import ProviderUnavailable
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

LIFI_API = "https://li.quest/v1"

# LI.FI requires a sender for quotes; any well-formed address works for pricing
QUOTE_PLACEHOLDER_EVM = "0x000000000000000000000000000000000000dEaD"

STEP_TYPES = {
    "swap": StepType.SWAP,
    "cross": StepType.BRIDGE,
    "protocol": StepType.SWAP,
}


class LiFiAdapter(ProviderAdapter):
    """LI.FI bridge and DEX aggregator."""

    provider_key = "lifi"

    def __init__(
        self,
        api_key: Optional[str] = None,
        tokens: Optional[TokenRegistry] = None,
        quote_ttl_seconds: int = 60,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.tokens = tokens or TokenRegistry()
        self.quote_ttl_seconds = quote_ttl_seconds
        self.chain_transformer = ChainTransformer(self.tokens.chains)
        self.token_transformer = TokenTransformer(self.tokens.chains)

    @property
    def name(self) -> str:
        return "LI.FI"

    def supports_chain(self, chain_id: int) -> bool:
        return self.chain_transformer.is_supported(chain_id, self.provider_key)

    def supports_cross_chain(self) -> bool:
        return True

    def get_priority(self) -> int:
        return 1

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-lifi-api-key"] = self.api_key
        return headers

    def _sender(self, params: RouterParams) -> str:
        if params.recipient:
            return params.recipient
        if params.from_chain == SOLANA_CHAIN_ID:
            return SOLANA_NATIVE_ADDRESS
        return QUOTE_PLACEHOLDER_EVM

    async def _fetch_route(self, params: RouterParams) -> Optional[RouterRoute]:
        from_chain = self.chain_transformer.to_provider(params.from_chain, self.provider_key)
        to_chain = self.chain_transformer.to_provider(params.to_chain, self.provider_key)
        if from_chain is None or to_chain is None:
            return None

        from_decimals = await self.tokens.get_decimals(params.from_chain, params.from_token)
        to_decimals = await self.tokens.get_decimals(params.to_chain, params.to_token)
        query = {
            "fromChain": str(from_chain),
            "toChain": str(to_chain),
            "fromToken": self.token_transformer.to_provider(params.from_chain, params.from_token, self.provider_key),
            "toToken": self.token_transformer.to_provider(params.to_chain, params.to_token, self.provider_key),
            "fromAmount": AmountTransformer.to_smallest_unit(params.amount, from_decimals),
            "fromAddress": self._sender(params),
            "slippage": str(SlippageTransformer.to_fraction(params.slippage)),
        }
        if params.recipient and not params.is_cross_chain:
            query["toAddress"] = params.recipient

        async with self._client() as client:
            response = await client.get(f"{LIFI_API}/quote", headers=self._get_headers(), params=query)

        if response.status_code == 404:
            logger.debug(f"LI.FI has no route: {response.text}")
            return None
        if response.status_code != 200:
            raise ProviderUnavailable(self.name, f"API error {response.status_code}")

        data = response.json()
        estimate = data.get("estimate") or {}
        to_amount_raw = str(estimate.get("toAmount") or "0")
        if to_amount_raw == "0":
            return None

        from_token = TokenAmount(
            params.from_chain, params.from_token, AmountTransformer.normalize(params.amount),
            self.tokens.get_symbol(params.from_chain, params.from_token), from_decimals,
        )
        to_token = TokenAmount(
            params.to_chain, params.to_token, AmountTransformer.to_human_readable(to_amount_raw, to_decimals),
            self.tokens.get_symbol(params.to_chain, params.to_token), to_decimals,
        )

        steps = [self._normalize_step(step) for step in data.get("includedSteps") or []]
        if not steps:
            step_type = StepType.BRIDGE if params.is_cross_chain else StepType.SWAP
            steps = [RouteStep(step_type, params.from_chain, from_token, to_token, venue=data.get("tool"))]

        protocol_usd = sum(
            (Decimal(str(c.get("amountUSD") or "0")) for c in estimate.get("feeCosts") or []),
            Decimal("0"),
        )
        gas_costs = estimate.get("gasCosts") or []
        gas_usd = sum((Decimal(str(c.get("amountUSD") or "0")) for c in gas_costs), Decimal("0"))
        gas_native = Decimal("0")
        for cost in gas_costs:
            token = cost.get("token") or {}
            decimals = int(token.get("decimals", 18))
            gas_native += Decimal(AmountTransformer.to_human_readable(str(cost.get("amount") or "0"), decimals))

        return RouterRoute(
            provider=self.name,
            route_id=new_route_id("lifi"),
            from_token=from_token,
            to_token=to_token,
            steps=steps,
            exchange_rate=to_token.value / from_token.value,
            price_impact=self._price_impact(estimate),
            slippage=params.slippage,
            fees=FeeBreakdown(
                protocol_usd=protocol_usd,
                gas_native=gas_native,
                gas_usd=gas_usd,
                total_usd=protocol_usd + gas_usd,
                gas_estimated=not gas_costs,
            ),
            estimated_time=int(estimate.get("executionDuration") or 30),
            expires_at=route_expiry(self.quote_ttl_seconds),
            raw=data,
        )

    def _normalize_step(self, step: dict) -> RouteStep:
        action = step.get("action") or {}
        estimate = step.get("estimate") or {}
        from_info = action.get("fromToken") or {}
        to_info = action.get("toToken") or {}
        from_decimals = int(from_info.get("decimals", 18))
        to_decimals = int(to_info.get("decimals", 18))
        return RouteStep(
            type=STEP_TYPES.get(step.get("type", "swap"), StepType.SWAP),
            chain_id=self._canonical_chain(action.get("fromChainId")),
            from_token=TokenAmount(
                self._canonical_chain(action.get("fromChainId")),
                from_info.get("address", ""),
                AmountTransformer.to_human_readable(str(action.get("fromAmount") or "0"), from_decimals),
                from_info.get("symbol"),
                from_decimals,
            ),
            to_token=TokenAmount(
                self._canonical_chain(action.get("toChainId")),
                to_info.get("address", ""),
                AmountTransformer.to_human_readable(str(estimate.get("toAmount") or "0"), to_decimals),
                to_info.get("symbol"),
                to_decimals,
            ),
            venue=(step.get("toolDetails") or {}).get("name") or step.get("tool"),
        )

    def _canonical_chain(self, provider_chain_id) -> int:
        if provider_chain_id is None:
            return 0
        return self.chain_transformer.from_provider(int(provider_chain_id), self.provider_key) or int(provider_chain_id)

    @staticmethod
    def _price_impact(estimate: dict) -> float:
        from_usd = estimate.get("fromAmountUSD")
        to_usd = estimate.get("toAmountUSD")
        if not from_usd or not to_usd:
            return 0.0
        from_value = float(from_usd)
        if from_value <= 0:
            return 0.0
        return max(0.0, (from_value - float(to_usd)) / from_value * 100)
