"""Provider-agnostic route model and the adapter interface every source implements."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

import httpx

from crossroute.errors import ProviderUnavailable

if TYPE_CHECKING:
    from crossroute.composer import CrossChainRoute

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100

# How a route's price impact was obtained
IMPACT_QUOTED = "quoted"
IMPACT_FROM_USD = "usd_values"
IMPACT_UNKNOWN = "unknown"


class StepType(str, Enum):
    """Kind of action one route step performs."""

    SWAP = "swap"
    BRIDGE = "bridge"
    WRAP = "wrap"
    UNWRAP = "unwrap"


class RouteOrder(str, Enum):
    """Caller preference used when ranking candidates."""

    RECOMMENDED = "RECOMMENDED"
    FASTEST = "FASTEST"
    CHEAPEST = "CHEAPEST"


@dataclass
class TokenAmount:
    """A token on a chain together with a human-readable amount."""

    chain_id: int
    address: str
    amount: str
    symbol: Optional[str] = None
    decimals: Optional[int] = None

    @property
    def value(self) -> Decimal:
        return Decimal(self.amount)

    def to_dict(self) -> dict:
        return {
            "chainId": self.chain_id,
            "address": self.address,
            "amount": self.amount,
            "symbol": self.symbol,
            "decimals": self.decimals,
        }


@dataclass
class RouteStep:
    """One swap, bridge, wrap or unwrap action inside a route."""

    type: StepType
    chain_id: int
    from_token: TokenAmount
    to_token: TokenAmount
    venue: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "chainId": self.chain_id,
            "fromToken": self.from_token.to_dict(),
            "toToken": self.to_token.to_dict(),
            "venue": self.venue,
        }


@dataclass
class FeeBreakdown:
    """Fees of a route. ``gas_estimated`` marks gas data not reported by the source."""

    protocol_usd: Decimal = Decimal("0")
    gas_native: Decimal = Decimal("0")
    gas_usd: Decimal = Decimal("0")
    total_usd: Decimal = Decimal("0")
    gas_estimated: bool = False

    def to_dict(self) -> dict:
        return {
            "protocol": str(self.protocol_usd),
            "gas": str(self.gas_native),
            "gasUSD": str(self.gas_usd),
            "totalUSD": str(self.total_usd),
            "gasEstimated": self.gas_estimated,
        }


@dataclass
class RouterRoute:
    """A normalized route from any provider, the graph or the cross-chain composer."""

    provider: str
    route_id: str
    from_token: TokenAmount
    to_token: TokenAmount
    steps: list[RouteStep]
    exchange_rate: Decimal
    price_impact: float
    slippage: float
    fees: FeeBreakdown
    estimated_time: int
    expires_at: float
    cross_chain: Optional["CrossChainRoute"] = None
    raw: Optional[dict] = field(default_factory=dict)
    price_impact_source: str = IMPACT_QUOTED

    @property
    def output_amount(self) -> Decimal:
        return self.to_token.value

    @property
    def hop_count(self) -> int:
        hops = sum(1 for s in self.steps if s.type in (StepType.SWAP, StepType.BRIDGE))
        return max(hops, 1)

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    def with_slippage(self, slippage: float) -> "RouterRoute":
        self.slippage = slippage
        return self

    def to_dict(self) -> dict:
        data = {
            "router": self.provider,
            "routeId": self.route_id,
            "fromToken": self.from_token.to_dict(),
            "toToken": self.to_token.to_dict(),
            "exchangeRate": str(self.exchange_rate),
            "priceImpact": round(self.price_impact, 4),
            "priceImpactSource": self.price_impact_source,
            "slippage": self.slippage,
            "fees": self.fees.to_dict(),
            "steps": [s.to_dict() for s in self.steps],
            "estimatedTime": self.estimated_time,
            "expiresAt": int(self.expires_at * 1000),
        }
        if self.cross_chain is not None:
            data["crossChain"] = self.cross_chain.to_dict()
        return data


@dataclass
class RouterParams:
    """Canonical route request handed to every candidate source."""

    from_chain: int
    from_token: str
    to_chain: int
    to_token: str
    amount: str  # human-readable
    slippage: float = 0.5
    recipient: Optional[str] = None
    order: RouteOrder = RouteOrder.RECOMMENDED
    max_hops: int = 3

    @property
    def is_cross_chain(self) -> bool:
        return self.from_chain != self.to_chain

    def with_slippage(self, slippage: float) -> "RouterParams":
        return RouterParams(
            from_chain=self.from_chain,
            from_token=self.from_token,
            to_chain=self.to_chain,
            to_token=self.to_token,
            amount=self.amount,
            slippage=slippage,
            recipient=self.recipient,
            order=self.order,
            max_hops=self.max_hops,
        )


def new_route_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def route_expiry(ttl_seconds: int = 60) -> float:
    return time.time() + ttl_seconds


class ProviderAdapter(ABC):
    """Abstract base class for external routing and bridging sources.

    Subclasses implement ``_fetch_route``; ``get_route`` adds the single
    retry on transient network failure and turns every other failure into
    ``ProviderUnavailable``.
    """

    max_retries = 1

    def __init__(
        self,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        pass

    @abstractmethod
    def supports_chain(self, chain_id: int) -> bool:
        """Check if this provider can quote on a chain."""
        pass

    def supports_cross_chain(self) -> bool:
        return False

    def get_priority(self) -> int:
        """Lower values are tried first."""
        return DEFAULT_PRIORITY

    def supports_pair(self, from_chain: int, from_token: str, to_chain: int, to_token: str) -> bool:
        """Check if this provider can route between two tokens."""
        if not (self.supports_chain(from_chain) and self.supports_chain(to_chain)):
            return False
        if from_chain != to_chain and not self.supports_cross_chain():
            return False
        return True

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_route(self, params: RouterParams) -> Optional[RouterRoute]:
        """Get a normalized route, or None when the provider has no route.

        Raises:
            ProviderUnavailable: the provider errored or kept failing at the network level
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await self._fetch_route(params)
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    logger.debug(f"{self.name} transient error, retrying: {type(e).__name__}: {e}")
                    continue
                raise ProviderUnavailable(self.name, f"network error: {type(e).__name__}: {e}") from e
            except ProviderUnavailable:
                raise
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                raise ProviderUnavailable(self.name, f"{type(e).__name__}: {e}") from e
        return None

    @abstractmethod
    async def _fetch_route(self, params: RouterParams) -> Optional[RouterRoute]:
        """Query the provider and normalize its response."""
        pass
