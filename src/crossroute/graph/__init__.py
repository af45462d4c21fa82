"""Per-chain liquidity graphs, their cache tiers and background refresh."""

from crossroute.graph.builder import GraphBuilder
from crossroute.graph.cache import CacheManager
from crossroute.graph.liquidity_graph import GraphStats, LiquidityGraph
from crossroute.graph.models import PairEdge, TokenNode
from crossroute.graph.updater import GraphUpdater

__all__ = [
    "CacheManager",
    "GraphBuilder",
    "GraphStats",
    "GraphUpdater",
    "LiquidityGraph",
    "PairEdge",
    "TokenNode",
]
