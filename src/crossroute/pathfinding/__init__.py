"""Multi-hop path search over the liquidity graph."""

from crossroute.pathfinding.engine import PathfindingEngine
from crossroute.pathfinding.intermediaries import IntermediarySelector

__all__ = ["IntermediarySelector", "PathfindingEngine"]
