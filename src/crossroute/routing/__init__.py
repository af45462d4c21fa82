"""Provider adapters and route normalization.

Providers:
- LI.FI: same-chain and cross-chain aggregator (EVM and Solana)
- 1inch: EVM DEX aggregator (requires an API key)
- Jupiter: Solana DEX aggregator
"""

from crossroute.routing.base import (
    FeeBreakdown,
    ProviderAdapter,
    RouteOrder,
    RouterParams,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
)
from crossroute.routing.registry import ProviderRegistry

__all__ = [
    "FeeBreakdown",
    "ProviderAdapter",
    "ProviderRegistry",
    "RouteOrder",
    "RouterParams",
    "RouterRoute",
    "RouteStep",
    "StepType",
    "TokenAmount",
]
