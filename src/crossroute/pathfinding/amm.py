"""Constant-product AMM math (UniswapV2 and forks).

All amounts are integers in the token's smallest unit.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from crossroute.graph.models import PairEdge

FEE_DENOMINATOR = 10_000


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 30) -> int:
    """Output amount of a swap with the fee taken from the input.

    Formula: out = (in * (10000 - fee) * R_out) / (R_in * 10000 + in * (10000 - fee))
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * (FEE_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def spot_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> Decimal:
    """Output at the pool's pre-trade price, with no fee and no impact."""
    if reserve_in <= 0:
        return Decimal(0)
    return Decimal(amount_in) * Decimal(reserve_out) / Decimal(reserve_in)


def price_impact(amount_in: int, reserve_in: int) -> float:
    """Percent deviation of the executed price from the pre-trade price, fee excluded."""
    if reserve_in <= 0:
        return 100.0
    return amount_in / (reserve_in + amount_in) * 100


def hop_cost(amount_in: int, edge: PairEdge, token_in: str) -> Optional[float]:
    """Negative log of the fraction of value a hop keeps (fee plus impact).

    Always >= 0, so it can be summed along a path by Dijkstra.
    """
    reserve_in, reserve_out = edge.reserves_for(token_in)
    out = get_amount_out(amount_in, reserve_in, reserve_out, edge.fee_bps)
    if out <= 0:
        return None
    spot = spot_amount_out(amount_in, reserve_in, reserve_out)
    if spot <= 0:
        return None
    retained = float(Decimal(out) / spot)
    return -math.log(min(retained, 1.0))


@dataclass
class PathQuote:
    """A concrete path with per-hop amounts."""

    tokens: list[str]
    edges: list[PairEdge]
    amounts: list[int]
    price_impact: float

    @property
    def amount_in(self) -> int:
        return self.amounts[0]

    @property
    def amount_out(self) -> int:
        return self.amounts[-1]

    @property
    def hops(self) -> int:
        return len(self.edges)

    @property
    def key(self) -> tuple:
        return tuple(e.id for e in self.edges)

    def lossless_amount_out(self) -> Decimal:
        """Output if every hop traded at its spot price with no fee."""
        amount = Decimal(self.amount_in)
        for token_in, edge in zip(self.tokens, self.edges):
            reserve_in, reserve_out = edge.reserves_for(token_in)
            amount = amount * Decimal(reserve_out) / Decimal(reserve_in)
        return amount


def quote_edges(tokens: list[str], edges: list[PairEdge], amount_in: int) -> Optional[PathQuote]:
    """Simulate a path hop by hop."""
    amounts = [amount_in]
    retained = 1.0
    for token_in, edge in zip(tokens, edges):
        reserve_in, reserve_out = edge.reserves_for(token_in)
        out = get_amount_out(amounts[-1], reserve_in, reserve_out, edge.fee_bps)
        if out <= 0:
            return None
        retained *= 1 - price_impact(amounts[-1], reserve_in) / 100
        amounts.append(out)
    return PathQuote(list(tokens), list(edges), amounts, (1 - retained) * 100)


def best_hop(edges: list[PairEdge], token_in: str, amount_in: int) -> Optional[tuple[PairEdge, int]]:
    """Pick the venue giving the largest output for one hop."""
    best = None
    for edge in edges:
        reserve_in, reserve_out = edge.reserves_for(token_in)
        out = get_amount_out(amount_in, reserve_in, reserve_out, edge.fee_bps)
        if out > 0 and (best is None or out > best[1]):
            best = (edge, out)
    return best
