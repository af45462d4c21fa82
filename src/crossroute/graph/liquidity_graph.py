"""Per-chain liquidity graph.

A ``LiquidityGraph`` is an immutable snapshot: every change produces a new
instance with a higher version, and the builder publishes it by swapping a
single reference. Readers keep traversing whichever snapshot they started
with.
"""

import time
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from crossroute.chains import TokenCategory
from crossroute.graph.models import PairEdge, TokenNode


@dataclass(frozen=True)
class GraphStats:
    chain_id: int
    version: int
    node_count: int
    edge_count: int
    total_liquidity_usd: float
    avg_liquidity_per_edge: float

    def to_dict(self) -> dict:
        return {
            "chain_id": self.chain_id,
            "version": self.version,
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "total_liquidity_usd": self.total_liquidity_usd,
            "avg_liquidity_per_edge": self.avg_liquidity_per_edge,
        }


class LiquidityGraph:
    """Tokens (nodes) and pools (edges) of one chain."""

    def __init__(
        self,
        chain_id: int,
        nodes: Optional[dict[str, TokenNode]] = None,
        edges: Optional[dict[str, PairEdge]] = None,
        version: int = 0,
    ):
        self.chain_id = chain_id
        self.version = version
        self.created_at = time.time()
        self._edges: dict[str, PairEdge] = {}
        self._adjacency: dict[str, list[str]] = {}

        for edge in (edges or {}).values():
            if edge.chain_id != chain_id:
                raise ValueError(f"Edge {edge.id} belongs to chain {edge.chain_id}, not {chain_id}")
            self._edges[edge.id] = edge
            self._adjacency.setdefault(edge.token_a, []).append(edge.id)
            self._adjacency.setdefault(edge.token_b, []).append(edge.id)

        self._nodes: dict[str, TokenNode] = {}
        for address in self._adjacency:
            node = (nodes or {}).get(address) or TokenNode(chain_id=chain_id, address=address)
            liquidity = sum(self._edges[eid].liquidity_usd for eid in self._adjacency[address])
            self._nodes[address] = replace(node, liquidity_usd=liquidity)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def is_empty(self) -> bool:
        return not self._edges

    def nodes(self) -> list[TokenNode]:
        return list(self._nodes.values())

    def edges(self) -> list[PairEdge]:
        return list(self._edges.values())

    def get_node(self, address: str) -> Optional[TokenNode]:
        return self._nodes.get(address.lower())

    def has_token(self, address: str) -> bool:
        return address.lower() in self._nodes

    def get_edge(self, edge_id: str) -> Optional[PairEdge]:
        return self._edges.get(edge_id)

    def get_edges(self, address: str) -> list[PairEdge]:
        return [self._edges[eid] for eid in self._adjacency.get(address.lower(), [])]

    def get_neighbors(self, address: str, min_liquidity_usd: float = 0.0) -> list[PairEdge]:
        """Edges incident to a token above a liquidity floor, most liquid first."""
        edges = [e for e in self.get_edges(address) if e.liquidity_usd >= min_liquidity_usd]
        edges.sort(key=lambda e: (-e.liquidity_usd, e.id))
        return edges

    def get_edges_between(self, token_a: str, token_b: str) -> list[PairEdge]:
        other = token_b.lower()
        edges = [e for e in self.get_edges(token_a) if e.other(token_a) == other]
        edges.sort(key=lambda e: (-e.liquidity_usd, e.id))
        return edges

    def get_nodes_by_category(self, category: TokenCategory) -> list[TokenNode]:
        nodes = [n for n in self._nodes.values() if n.category == category]
        nodes.sort(key=lambda n: -n.liquidity_usd)
        return nodes

    def get_edges_by_liquidity(self, min_liquidity_usd: float = 0.0, limit: Optional[int] = None) -> list[PairEdge]:
        edges = [e for e in self._edges.values() if e.liquidity_usd >= min_liquidity_usd]
        edges.sort(key=lambda e: (-e.liquidity_usd, e.id))
        return edges[:limit] if limit is not None else edges

    def get_stats(self) -> GraphStats:
        total = sum(e.liquidity_usd for e in self._edges.values())
        return GraphStats(
            chain_id=self.chain_id,
            version=self.version,
            node_count=self.node_count,
            edge_count=self.edge_count,
            total_liquidity_usd=total,
            avg_liquidity_per_edge=total / self.edge_count if self._edges else 0.0,
        )

    def with_edges(
        self,
        edges: Iterable[PairEdge],
        nodes: Optional[Iterable[TokenNode]] = None,
    ) -> "LiquidityGraph":
        """Return a new snapshot with edges inserted or replaced."""
        new_edges = dict(self._edges)
        for edge in edges:
            new_edges[edge.id] = edge
        new_nodes = dict(self._nodes)
        for node in nodes or []:
            new_nodes[node.address.lower()] = node
        return LiquidityGraph(self.chain_id, new_nodes, new_edges, self.version + 1)

    def pruned(self, min_liquidity_usd: float = 0.0, max_age_seconds: Optional[float] = None) -> "LiquidityGraph":
        """Return a new snapshot without thin or stale edges."""
        now = time.time()
        kept = {
            eid: e for eid, e in self._edges.items()
            if e.liquidity_usd >= min_liquidity_usd
            and (max_age_seconds is None or e.age(now) <= max_age_seconds)
        }
        return LiquidityGraph(self.chain_id, self._nodes, kept, self.version + 1)

    @classmethod
    def from_edges(
        cls,
        chain_id: int,
        edges: Iterable[PairEdge],
        nodes: Optional[Iterable[TokenNode]] = None,
        version: int = 0,
    ) -> "LiquidityGraph":
        return cls(
            chain_id,
            {n.address.lower(): n for n in nodes or []},
            {e.id: e for e in edges},
            version,
        )
