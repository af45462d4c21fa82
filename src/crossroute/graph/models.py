"""Token and pair records stored in the liquidity graph."""

import time
from dataclasses import dataclass, field, replace
from typing import Optional

from crossroute.chains import TokenCategory


def make_edge_id(token_a: str, token_b: str, chain_id: int, venue: str) -> str:
    a, b = sorted((token_a.lower(), token_b.lower()))
    return f"{a}-{b}-{chain_id}-{venue}"


@dataclass(frozen=True)
class TokenNode:
    """A token on one chain. Identity is (chain_id, address)."""

    chain_id: int
    address: str
    symbol: str = ""
    decimals: int = 18
    liquidity_usd: float = 0.0
    category: TokenCategory = TokenCategory.OTHER
    updated_at: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        return f"{self.chain_id}:{self.address.lower()}"


@dataclass(frozen=True)
class PairEdge:
    """An undirected AMM pool between two tokens.

    ``token_a``/``token_b`` are stored in sorted lowercase order and
    ``reserve_a``/``reserve_b`` are aligned with them. Instances are
    immutable; ``refreshed`` is the only way to change reserves and it
    always replaces the liquidity estimate along with them.
    """

    token_a: str
    token_b: str
    chain_id: int
    venue: str
    pair_address: str
    liquidity_usd: float
    reserve_a: int
    reserve_b: int
    fee_bps: int = 30
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def create(
        cls,
        token0: str,
        token1: str,
        reserve0: int,
        reserve1: int,
        chain_id: int,
        venue: str,
        pair_address: str,
        liquidity_usd: float,
        fee_bps: int = 30,
        updated_at: Optional[float] = None,
    ) -> "PairEdge":
        """Build an edge from pool-ordered tokens, normalizing the token order."""
        t0, t1 = token0.lower(), token1.lower()
        if t0 > t1:
            t0, t1 = t1, t0
            reserve0, reserve1 = reserve1, reserve0
        return cls(
            token_a=t0,
            token_b=t1,
            chain_id=chain_id,
            venue=venue,
            pair_address=pair_address.lower(),
            liquidity_usd=float(liquidity_usd),
            reserve_a=int(reserve0),
            reserve_b=int(reserve1),
            fee_bps=fee_bps,
            updated_at=updated_at if updated_at is not None else time.time(),
        )

    @property
    def id(self) -> str:
        return make_edge_id(self.token_a, self.token_b, self.chain_id, self.venue)

    @property
    def pair_key(self) -> tuple[str, str]:
        return (self.token_a, self.token_b)

    def has_token(self, address: str) -> bool:
        return address.lower() in (self.token_a, self.token_b)

    def other(self, address: str) -> str:
        return self.token_b if address.lower() == self.token_a else self.token_a

    def reserves_for(self, token_in: str) -> tuple[int, int]:
        """Return ``(reserve_in, reserve_out)`` for a swap starting at ``token_in``."""
        if token_in.lower() == self.token_a:
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a

    def refreshed(self, reserve_a: int, reserve_b: int, liquidity_usd: float) -> "PairEdge":
        return replace(
            self,
            reserve_a=int(reserve_a),
            reserve_b=int(reserve_b),
            liquidity_usd=float(liquidity_usd),
            updated_at=time.time(),
        )

    def age(self, now: Optional[float] = None) -> float:
        return (now or time.time()) - self.updated_at

    def to_dict(self) -> dict:
        return {
            "token_a": self.token_a,
            "token_b": self.token_b,
            "chain_id": self.chain_id,
            "venue": self.venue,
            "pair_address": self.pair_address,
            "liquidity_usd": self.liquidity_usd,
            "reserve_a": str(self.reserve_a),
            "reserve_b": str(self.reserve_b),
            "fee_bps": self.fee_bps,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PairEdge":
        return cls(
            token_a=data["token_a"],
            token_b=data["token_b"],
            chain_id=int(data["chain_id"]),
            venue=data["venue"],
            pair_address=data["pair_address"],
            liquidity_usd=float(data["liquidity_usd"]),
            reserve_a=int(data["reserve_a"]),
            reserve_b=int(data["reserve_b"]),
            fee_bps=int(data.get("fee_bps", 30)),
            updated_at=float(data["updated_at"]),
        )
