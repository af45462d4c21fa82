"""Cross-chain route composition.

A cross-chain route is a strict pipeline: source-chain swap into a
bridgeable token, bridge transfer, destination-chain swap out of the
bridged token. Every leg is quoted with the previous leg's actual output.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from crossroute.bridges import BridgeAdapter, BridgeQuote
from crossroute.chains import ChainRegistry, TokenInfo, TokenRegistry, get_chain_registry
from crossroute.errors import AmountContinuityError, BridgeUnavailable
from crossroute.routing.base import (
    FeeBreakdown,
    IMPACT_FROM_USD,
    IMPACT_QUOTED,
    IMPACT_UNKNOWN,
    RouterParams,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
    route_expiry,
)
from crossroute.routing.transformers import AmountTransformer

logger = logging.getLogger(__name__)

SameChainQuote = Callable[[RouterParams], Awaitable[Optional[RouterRoute]]]

# Symbols treated as the same asset across chains
COUNTERPARTS = {
    "WETH": ("WETH", "ETH"),
    "ETH": ("ETH", "WETH"),
}

BRIDGE_STABLES = ("USDC", "USDT")


@dataclass
class CrossChainRoute:
    """Source swap, bridge and destination swap with combined totals."""

    source_swap: Optional[RouterRoute]
    bridge: BridgeQuote
    destination_swap: Optional[RouterRoute]
    total_fee_usd: Decimal
    total_time: int

    @property
    def amount_out(self) -> Decimal:
        if self.destination_swap is not None:
            return self.destination_swap.to_token.value
        return self.bridge.amount_out

    def to_dict(self) -> dict:
        return {
            "sourceSwap": self.source_swap.to_dict() if self.source_swap else None,
            "bridge": self.bridge.to_dict(),
            "destinationSwap": self.destination_swap.to_dict() if self.destination_swap else None,
            "totalFeeUSD": str(self.total_fee_usd),
            "totalTime": self.total_time,
        }


def check_continuity(expected: Decimal, actual: Decimal, stage: str) -> None:
    if Decimal(expected) != Decimal(actual):
        raise AmountContinuityError(
            f"{stage}: expected amount {expected}, leg was quoted with {actual}",
            {"stage": stage, "expected": str(expected), "actual": str(actual)},
        )


class CrossChainRouteComposer:
    """Builds cross-chain routes from same-chain quotes and bridge quotes."""

    def __init__(
        self,
        bridges: list[BridgeAdapter],
        tokens: Optional[TokenRegistry] = None,
        chains: Optional[ChainRegistry] = None,
        quote_ttl_seconds: int = 60,
    ):
        self.bridges = sorted(bridges, key=lambda b: b.get_priority())
        self.chains = chains or get_chain_registry()
        self.tokens = tokens or TokenRegistry(self.chains)
        self.quote_ttl_seconds = quote_ttl_seconds

    def bridge_candidates(self, from_chain: int, to_chain: int) -> list[tuple[TokenInfo, TokenInfo]]:
        """Bridgeable (source token, destination token) pairs in priority order."""
        source = self.chains.get_canonical_chain(from_chain)
        destination = self.chains.get_canonical_chain(to_chain)

        candidates = []
        native = source.wrapped_native
        for symbol in COUNTERPARTS.get(native.symbol, (native.symbol,)):
            counterpart = destination.token_by_symbol(symbol)
            if counterpart:
                candidates.append((native, counterpart))
                break
        for symbol in BRIDGE_STABLES:
            src, dst = source.token_by_symbol(symbol), destination.token_by_symbol(symbol)
            if src and dst:
                candidates.append((src, dst))
        return candidates

    async def compose(self, params: RouterParams, same_chain_quote: SameChainQuote) -> CrossChainRoute:
        """Compose a cross-chain route.

        Raises:
            BridgeUnavailable: no candidate produced a complete route
        """
        failures: list[str] = []
        for src, dst in self.bridge_candidates(params.from_chain, params.to_chain):
            try:
                route = await self._compose_via(params, src, dst, same_chain_quote)
            except AmountContinuityError:
                raise
            except BridgeUnavailable as e:
                failures.append(e.message)
                continue
            if route is not None:
                logger.info(
                    f"Composed cross-chain route via {src.symbol} and {route.bridge.bridge_id}: "
                    f"{params.amount} -> {route.amount_out}"
                )
                return route
            failures.append(f"{src.symbol}: no same-chain route for a swap leg")

        raise BridgeUnavailable(
            f"No cross-chain route from chain {params.from_chain} to {params.to_chain}"
            + (f" ({'; '.join(failures)})" if failures else ": no bridgeable token"),
            {"attempts": failures},
        )

    async def _compose_via(
        self,
        params: RouterParams,
        src: TokenInfo,
        dst: TokenInfo,
        same_chain_quote: SameChainQuote,
    ) -> Optional[CrossChainRoute]:
        # 1. source chain: from_token -> bridgeable token
        source_swap = None
        bridge_amount = Decimal(AmountTransformer.normalize(params.amount))
        if params.from_token.lower() != src.address.lower():
            source_swap = await same_chain_quote(
                RouterParams(
                    from_chain=params.from_chain,
                    from_token=params.from_token,
                    to_chain=params.from_chain,
                    to_token=src.address,
                    amount=params.amount,
                    slippage=params.slippage,
                    recipient=params.recipient,
                    max_hops=params.max_hops,
                )
            )
            if source_swap is None:
                return None
            bridge_amount = source_swap.to_token.value

        # 2. bridge the actual output of the source swap
        bridge = await self._best_bridge_quote(params, src, dst, bridge_amount)
        check_continuity(bridge_amount, bridge.amount_in, "bridge input")

        # 3. destination chain: bridged token -> to_token
        destination_swap = None
        if params.to_token.lower() != dst.address.lower():
            destination_swap = await same_chain_quote(
                RouterParams(
                    from_chain=params.to_chain,
                    from_token=dst.address,
                    to_chain=params.to_chain,
                    to_token=params.to_token,
                    amount=AmountTransformer.normalize(bridge.amount_out),
                    slippage=params.slippage,
                    recipient=params.recipient,
                    max_hops=params.max_hops,
                )
            )
            if destination_swap is None:
                return None
            check_continuity(bridge.amount_out, destination_swap.from_token.value, "destination swap input")

        legs = [leg for leg in (source_swap, destination_swap) if leg is not None]
        return CrossChainRoute(
            source_swap=source_swap,
            bridge=bridge,
            destination_swap=destination_swap,
            total_fee_usd=bridge.total_fee_usd + sum((leg.fees.total_usd for leg in legs), Decimal(0)),
            total_time=bridge.estimated_time + sum(leg.estimated_time for leg in legs),
        )

    async def _best_bridge_quote(
        self,
        params: RouterParams,
        src: TokenInfo,
        dst: TokenInfo,
        amount: Decimal,
    ) -> BridgeQuote:
        bridges = [b for b in self.bridges if b.supports_route(params.from_chain, params.to_chain)]
        if not bridges:
            raise BridgeUnavailable(f"{src.symbol}: no bridge serves {params.from_chain}->{params.to_chain}")

        results = await asyncio.gather(
            *(
                b.get_quote(params.from_chain, params.to_chain, src.address, dst.address, amount, params.slippage)
                for b in bridges
            ),
            return_exceptions=True,
        )
        quotes = []
        errors = []
        for bridge, result in zip(bridges, results):
            if isinstance(result, Exception):
                errors.append(f"{bridge.name}: {result}")
                logger.warning(f"Bridge {bridge.name} quote failed: {type(result).__name__}: {result}")
            elif result is None:
                errors.append(f"{bridge.name}: no quote")
            else:
                quotes.append(result)

        if not quotes:
            raise BridgeUnavailable(f"{src.symbol}: " + ", ".join(errors))

        # output first, then speed, then fee
        quotes.sort(key=lambda q: (-q.amount_out, q.estimated_time, q.total_fee_usd, q.bridge_id))
        return quotes[0]

    def to_router_route(self, route: CrossChainRoute, params: RouterParams) -> RouterRoute:
        """Flatten a cross-chain route into one RouterRoute."""
        bridge = route.bridge
        src_info = self.tokens.lookup(bridge.from_chain, bridge.from_token)
        dst_info = self.tokens.lookup(bridge.to_chain, bridge.to_token)

        bridge_in = TokenAmount(
            bridge.from_chain, bridge.from_token, AmountTransformer.normalize(bridge.amount_in),
            src_info.symbol if src_info else None, src_info.decimals if src_info else None,
        )
        bridge_out = TokenAmount(
            bridge.to_chain, bridge.to_token, AmountTransformer.normalize(bridge.amount_out),
            dst_info.symbol if dst_info else None, dst_info.decimals if dst_info else None,
        )

        steps: list[RouteStep] = []
        if route.source_swap:
            steps.extend(route.source_swap.steps)
        steps.append(
            RouteStep(StepType.BRIDGE, bridge.from_chain, bridge_in, bridge_out, venue=bridge.bridge_id)
        )
        if route.destination_swap:
            steps.extend(route.destination_swap.steps)

        from_token = route.source_swap.from_token if route.source_swap else bridge_in
        to_token = route.destination_swap.to_token if route.destination_swap else bridge_out
        legs = [leg for leg in (route.source_swap, route.destination_swap) if leg is not None]

        fees = FeeBreakdown(
            protocol_usd=sum((leg.fees.protocol_usd for leg in legs), Decimal(0)) + (bridge.total_fee_usd - bridge.gas_usd),
            gas_native=sum((leg.fees.gas_native for leg in legs), Decimal(0)),
            gas_usd=sum((leg.fees.gas_usd for leg in legs), Decimal(0)) + bridge.gas_usd,
            total_usd=route.total_fee_usd,
            gas_estimated=bridge.estimated or any(leg.fees.gas_estimated for leg in legs),
        )
        impact_retained = 1.0
        for leg in legs:
            impact_retained *= 1 - leg.price_impact / 100

        return RouterRoute(
            provider=f"composer:{bridge.bridge_id}",
            route_id=f"xchain-{params.from_chain}-{params.to_chain}-{bridge.bridge_id}-"
            + "-".join(leg.route_id for leg in legs),
            from_token=from_token,
            to_token=to_token,
            steps=steps,
            exchange_rate=to_token.value / from_token.value if from_token.value else Decimal(0),
            price_impact=(1 - impact_retained) * 100,
            slippage=params.slippage,
            fees=fees,
            estimated_time=route.total_time,
            expires_at=min([route_expiry(self.quote_ttl_seconds), bridge.expires_at] + [leg.expires_at for leg in legs]),
            cross_chain=route,
            price_impact_source=self._impact_source(legs),
        )

    @staticmethod
    def _impact_source(legs: list[RouterRoute]) -> str:
        sources = {leg.price_impact_source for leg in legs}
        for source in (IMPACT_UNKNOWN, IMPACT_FROM_USD):
            if source in sources:
                return source
        return IMPACT_QUOTED
