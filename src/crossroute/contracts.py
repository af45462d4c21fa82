"""Route request and response contracts."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from crossroute.routing.base import RouteOrder


class TokenRef(BaseModel):
    """A token on a specific chain."""

    chain_id: int = Field(..., description="Canonical chain id")
    address: str = Field(..., min_length=1, description="Token address or mint")


class RouteRequest(BaseModel):
    """Request for the best route between two tokens."""

    from_token: TokenRef = Field(..., description="Source token")
    to_token: TokenRef = Field(..., description="Destination token")
    from_amount: str = Field(
        ...,
        pattern=r"^\d+(\.\d+)?$",
        description="Human-readable input amount (e.g. 1.5)",
    )
    slippage: Optional[float] = Field(
        default=None,
        ge=0,
        le=50,
        description="Slippage tolerance in percent (default from settings)",
    )
    slippage_mode: Literal["fixed", "auto"] = Field(
        default="fixed", description="Fixed tolerance or automatic resolution"
    )
    recipient: Optional[str] = Field(None, description="Receiving address")
    order: RouteOrder = Field(default=RouteOrder.RECOMMENDED, description="Ranking preference")


class RouteResponse(BaseModel):
    """Best route with alternatives, or an error payload."""

    route: Optional[dict] = Field(None, description="Selected route")
    alternatives: list[dict] = Field(default_factory=list, description="Runner-up routes")
    sources: list[str] = Field(default_factory=list, description="Sources consulted")
    timestamp: int = Field(..., description="Response time in ms")
    expires_at: int = Field(..., description="Route expiry in ms")
    error: Optional[str] = Field(None, description="Error message if failed")
    error_code: Optional[str] = Field(None, description="Machine-readable error code")
    details: dict = Field(default_factory=dict, description="Error details")

    @property
    def success(self) -> bool:
        return self.route is not None and self.error is None
