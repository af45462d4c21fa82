"""Routing error taxonomy.

Per-provider and per-hop failures are recovered where they happen; only
the aggregated failure of a whole request is surfaced to callers.
"""

from typing import Optional


class RoutingError(Exception):
    """Base class for route discovery errors."""

    code = "ROUTING_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidRequest(RoutingError):
    """Malformed request or unsupported chain/token."""

    code = "INVALID_REQUEST"


class ProviderUnavailable(RoutingError):
    """One provider failed or timed out."""

    code = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}", {"provider": provider})
        self.provider = provider


class NoPathFound(RoutingError):
    """Every provider, the graph and all fallbacks failed."""

    code = "NO_PATH_FOUND"

    def __init__(self, message: str, sources: Optional[list[str]] = None):
        super().__init__(message, {"sources": sources or []})
        self.sources = sources or []


class BridgeUnavailable(RoutingError):
    """No cross-chain quote could be obtained."""

    code = "BRIDGE_UNAVAILABLE"


class InsufficientLiquidity(RoutingError):
    """A path exists but its price impact exceeds the safety ceiling."""

    code = "INSUFFICIENT_LIQUIDITY"

    def __init__(self, price_impact: float, message: Optional[str] = None):
        super().__init__(
            message or f"Price impact {price_impact:.2f}% exceeds the allowed ceiling",
            {"price_impact": round(price_impact, 4)},
        )
        self.price_impact = price_impact


class AmountContinuityError(RoutingError):
    """A cross-chain leg was quoted with an amount that does not match the previous leg."""

    code = "AMOUNT_CONTINUITY"


class SlippageExhausted(RoutingError):
    """Auto slippage ran out of attempts."""

    code = "SLIPPAGE_EXHAUSTED"

    def __init__(self, message: str, attempted: list[float]):
        super().__init__(message, {"attempted_slippage": attempted})
        self.attempted = attempted
