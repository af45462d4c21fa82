"""Graph searches over a liquidity graph snapshot.

- ``bfs_paths``: exhaustive simple paths up to ``max_hops`` (small graphs)
- ``dijkstra_path``: cheapest path by summed hop cost (larger graphs)
- ``astar_path``: Dijkstra with an admissible fee heuristic and a
  liquidity floor that drops thin pools (very large graphs)
"""

import heapq
import itertools
import math
from collections import deque
from typing import Optional

from crossroute.graph.liquidity_graph import LiquidityGraph
from crossroute.pathfinding.amm import FEE_DENOMINATOR, PathQuote, best_hop, hop_cost, quote_edges


def _allowed(token: str, target: str, intermediaries: Optional[set[str]]) -> bool:
    return token == target or intermediaries is None or token in intermediaries


def bfs_paths(
    graph: LiquidityGraph,
    from_token: str,
    to_token: str,
    max_hops: int = 3,
    intermediaries: Optional[set[str]] = None,
    max_paths: int = 50,
) -> list[list[str]]:
    """Enumerate simple token paths with at most ``max_hops`` hops, shortest first."""
    start, target = from_token.lower(), to_token.lower()
    if not graph.has_token(start) or not graph.has_token(target):
        return []

    paths: list[list[str]] = []
    queue = deque([[start]])
    while queue and len(paths) < max_paths:
        path = queue.popleft()
        current = path[-1]
        if len(path) - 1 >= max_hops:
            continue

        neighbors = sorted({e.other(current) for e in graph.get_edges(current)})
        for neighbor in neighbors:
            if neighbor in path or not _allowed(neighbor, target, intermediaries):
                continue
            new_path = path + [neighbor]
            if neighbor == target:
                paths.append(new_path)
                if len(paths) >= max_paths:
                    break
            else:
                queue.append(new_path)
    return paths


def quote_token_path(graph: LiquidityGraph, tokens: list[str], amount_in: int) -> Optional[PathQuote]:
    """Quote a token path, choosing the best venue for every hop."""
    edges = []
    amount = amount_in
    for token_in, token_out in zip(tokens, tokens[1:]):
        hop = best_hop(graph.get_edges_between(token_in, token_out), token_in, amount)
        if hop is None:
            return None
        edge, amount = hop
        edges.append(edge)
    return quote_edges(tokens, edges, amount_in)


def _min_fee_cost(graph: LiquidityGraph) -> float:
    fees = [e.fee_bps for e in graph.edges()]
    if not fees:
        return 0.0
    return -math.log(1 - min(fees) / FEE_DENOMINATOR)


def dijkstra_path(
    graph: LiquidityGraph,
    from_token: str,
    to_token: str,
    amount_in: int,
    max_hops: int = 3,
    intermediaries: Optional[set[str]] = None,
    min_liquidity_usd: float = 0.0,
    use_heuristic: bool = False,
) -> Optional[PathQuote]:
    """Cheapest simple path where each hop costs ``-log(out / spot_out)``.

    Amounts are carried along each label so that hop costs reflect the
    actual trade size at that point of the path.
    """
    start, target = from_token.lower(), to_token.lower()
    if not graph.has_token(start) or not graph.has_token(target):
        return None

    h_step = _min_fee_cost(graph) if use_heuristic else 0.0
    counter = itertools.count()
    best_cost: dict[tuple[str, int], float] = {(start, 0): 0.0}
    heap = [(h_step, next(counter), 0.0, start, [start], [], amount_in)]

    while heap:
        _, _, cost, token, path, edges, amount = heapq.heappop(heap)
        if token == target:
            return quote_edges(path, edges, amount_in)
        hops = len(edges)
        if hops >= max_hops or cost > best_cost.get((token, hops), math.inf):
            continue

        for edge in graph.get_neighbors(token, min_liquidity_usd):
            neighbor = edge.other(token)
            if neighbor in path or not _allowed(neighbor, target, intermediaries):
                continue
            step = hop_cost(amount, edge, token)
            if step is None:
                continue
            new_cost = cost + step
            state = (neighbor, hops + 1)
            if new_cost >= best_cost.get(state, math.inf):
                continue
            best_cost[state] = new_cost
            hop = best_hop([edge], token, amount)
            heuristic = 0.0 if neighbor == target else h_step
            heapq.heappush(
                heap,
                (new_cost + heuristic, next(counter), new_cost, neighbor, path + [neighbor], edges + [edge], hop[1]),
            )
    return None


def astar_path(
    graph: LiquidityGraph,
    from_token: str,
    to_token: str,
    amount_in: int,
    max_hops: int = 3,
    intermediaries: Optional[set[str]] = None,
    min_liquidity_usd: float = 10_000.0,
) -> Optional[PathQuote]:
    """Heuristic search for very large graphs; pools below the floor are never expanded."""
    return dijkstra_path(
        graph,
        from_token,
        to_token,
        amount_in,
        max_hops=max_hops,
        intermediaries=intermediaries,
        min_liquidity_usd=min_liquidity_usd,
        use_heuristic=True,
    )
