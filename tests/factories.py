"""Shared test data: BSC addresses, fakes for pair fetching and bridging, route builders."""

import time
from decimal import Decimal
from typing import Optional

from crossroute.bridges import BridgeAdapter, BridgeQuote
from crossroute.graph.models import PairEdge
from crossroute.routing.base import (
    FeeBreakdown,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
    route_expiry,
)

BSC = 56
ETHEREUM = 1

WBNB = "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c"
BSC_ETH = "0x2170ed0880ac9a755fd29b2688956bd959f933f8"
BSC_USDT = "0x55d398326f99059ff775485246999027b3197955"
BSC_USDC = "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d"
BSC_CAKE = "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"
BSC_BTCB = "0x7130d2a12b9bcbfae4f2634d864a1ee1ce3ead9c"
TWC = "0x4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b"

ETH_USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ETH_LINK = "0x514910771AF9Ca656af840dff83E8264EcF986CA"

E18 = 10**18


class FakePairFetcher:
    """In-memory stand-in for PairFetcher, keyed by pair."""

    def __init__(self, pairs: Optional[list[PairEdge]] = None, bulk: Optional[list[PairEdge]] = None):
        self.pairs = {}
        for edge in pairs or []:
            self.add(edge)
        self.bulk = bulk or []
        self.fetch_pair_calls: list[tuple[int, str, str]] = []
        self.refresh_calls = 0

    @staticmethod
    def _key(chain_id: int, token_a: str, token_b: str) -> tuple:
        return (chain_id, *sorted((token_a.lower(), token_b.lower())))

    def add(self, edge: PairEdge) -> None:
        self.pairs[self._key(edge.chain_id, edge.token_a, edge.token_b)] = edge

    async def fetch_bulk(self, chain_id: int, limit: int = 1000, min_liquidity_usd: float = 0.0):
        return [e for e in self.bulk if e.chain_id == chain_id]

    async def fetch_pair(self, chain_id: int, token_a: str, token_b: str):
        self.fetch_pair_calls.append((chain_id, token_a.lower(), token_b.lower()))
        return self.pairs.get(self._key(chain_id, token_a, token_b))

    async def refresh_edge(self, edge: PairEdge):
        self.refresh_calls += 1
        fresh = self.pairs.get(self._key(edge.chain_id, edge.token_a, edge.token_b))
        if fresh is None:
            return None
        return edge.refreshed(fresh.reserve_a, fresh.reserve_b, fresh.liquidity_usd)

    async def verify_pairs(self, edges: list[PairEdge]):
        return [await self.refresh_edge(e) or e for e in edges]


def make_edge(
    token0: str,
    token1: str,
    reserve0: int,
    reserve1: int,
    liquidity_usd: float,
    chain_id: int = BSC,
    venue: str = "pancakeswap",
    fee_bps: int = 25,
    pair_address: Optional[str] = None,
    updated_at: Optional[float] = None,
) -> PairEdge:
    return PairEdge.create(
        token0,
        token1,
        reserve0,
        reserve1,
        chain_id=chain_id,
        venue=venue,
        pair_address=pair_address or "0x" + (token0[2:6] + token1[2:6]) * 5,
        liquidity_usd=liquidity_usd,
        fee_bps=fee_bps,
        updated_at=updated_at,
    )


def make_route(
    provider: str,
    amount_out: str,
    amount_in: str = "1",
    chain_id: int = BSC,
    from_token: str = BSC_CAKE,
    to_token: str = BSC_USDT,
    fee_usd: str = "0",
    estimated_time: int = 10,
    price_impact: float = 0.1,
    slippage: float = 0.5,
    route_id: Optional[str] = None,
    hops: int = 1,
) -> RouterRoute:
    src = TokenAmount(chain_id, from_token, amount_in)
    dst = TokenAmount(chain_id, to_token, amount_out)
    steps = [RouteStep(StepType.SWAP, chain_id, src, dst, venue=provider) for _ in range(hops)]
    return RouterRoute(
        provider=provider,
        route_id=route_id or f"{provider}-{amount_out}",
        from_token=src,
        to_token=dst,
        steps=steps,
        exchange_rate=Decimal(amount_out) / Decimal(amount_in),
        price_impact=price_impact,
        slippage=slippage,
        fees=FeeBreakdown(total_usd=Decimal(fee_usd)),
        estimated_time=estimated_time,
        expires_at=route_expiry(60),
    )


class FakeBridge(BridgeAdapter):
    """Bridge charging a flat fee in the bridged token."""

    provider_key = "stargate"

    def __init__(self, bridge_id="fake", fee="1", input_skew="0", fail=None, **kwargs):
        super().__init__(**kwargs)
        self.bridge_id = bridge_id
        self.fee = Decimal(fee)
        self.input_skew = Decimal(input_skew)
        self.fail = fail
        self.calls: list[tuple[str, Decimal]] = []

    @property
    def name(self) -> str:
        return self.bridge_id

    async def get_quote(self, from_chain, to_chain, from_token, to_token, amount, slippage=0.5) -> Optional[BridgeQuote]:
        self.calls.append((from_token, amount))
        if self.fail is not None:
            if isinstance(self.fail, Exception):
                raise self.fail
            return None
        return BridgeQuote(
            bridge_id=self.bridge_id,
            from_chain=from_chain,
            to_chain=to_chain,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount + self.input_skew,
            amount_out=amount - self.fee,
            bridge_fee=self.fee,
            gas_usd=Decimal("0.5"),
            total_fee_usd=Decimal("0.5") + self.fee,
            estimated_time=300,
            min_amount_out=amount - self.fee,
            slippage=slippage,
            expires_at=time.time() + 60,
        )
