"""Builds and maintains the per-chain liquidity graphs."""

import asyncio
import logging
from itertools import combinations
from typing import Iterable, Optional

from crossroute.chains import ChainRegistry, TokenRegistry, get_chain_registry
from crossroute.graph.cache import CacheManager
from crossroute.graph.liquidity_graph import GraphStats, LiquidityGraph
from crossroute.graph.models import PairEdge, TokenNode
from crossroute.graph.pair_fetcher import PairFetcher

logger = logging.getLogger(__name__)

# Stablecoins paired with the endpoints during common-pair fallback
COMMON_STABLES = ("USDC", "USDT")


class GraphBuilder:
    """Single writer of the liquidity graphs.

    Full rebuilds run under a per-chain build lock; publishing a snapshot
    (rebuild or on-demand insert) runs under a narrow publish lock that
    covers only the reference swap.
    """

    def __init__(
        self,
        fetcher: PairFetcher,
        cache: CacheManager,
        tokens: TokenRegistry,
        chains: Optional[ChainRegistry] = None,
        bulk_fetch_limit: int = 1000,
        bulk_min_liquidity_usd: float = 1000.0,
        rpc_verify_count: int = 100,
        rpc_verify_min_liquidity_usd: float = 100_000.0,
        max_pair_age_seconds: Optional[float] = 3600,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.tokens = tokens
        self.chains = chains or get_chain_registry()
        self.bulk_fetch_limit = bulk_fetch_limit
        self.bulk_min_liquidity_usd = bulk_min_liquidity_usd
        self.rpc_verify_count = rpc_verify_count
        self.rpc_verify_min_liquidity_usd = rpc_verify_min_liquidity_usd
        self.max_pair_age_seconds = max_pair_age_seconds
        self._graphs: dict[int, LiquidityGraph] = {}
        self._build_locks: dict[int, asyncio.Lock] = {}
        self._publish_lock = asyncio.Lock()

    def get_graph(self, chain_id: int) -> LiquidityGraph:
        """Return the current snapshot for a chain (possibly empty)."""
        graph = self._graphs.get(chain_id)
        if graph is None:
            graph = LiquidityGraph(chain_id)
            self._graphs[chain_id] = graph
        return graph

    def set_graph(self, graph: LiquidityGraph) -> None:
        """Publish a prebuilt snapshot."""
        self._graphs[graph.chain_id] = graph

    def get_neighbors(self, chain_id: int, token_address: str, min_liquidity_usd: float = 0.0) -> list[PairEdge]:
        return self.get_graph(chain_id).get_neighbors(token_address, min_liquidity_usd)

    def make_node(self, chain_id: int, address: str) -> TokenNode:
        address = address.lower()
        info = self.tokens.lookup(chain_id, address)
        return TokenNode(
            chain_id=chain_id,
            address=address,
            symbol=info.symbol if info else "",
            decimals=info.decimals if info else 18,
            category=self.chains.classify_token(chain_id, address),
        )

    def _nodes_for(self, chain_id: int, edges: Iterable[PairEdge]) -> list[TokenNode]:
        addresses = {a for e in edges for a in e.pair_key}
        return [self.make_node(chain_id, a) for a in addresses]

    async def build_graph(self, chain_id: int) -> GraphStats:
        """Rebuild a chain's graph from the indexer, verifying top pairs via RPC.

        Never raises on partial failure: an unreachable indexer degrades to
        common pairs fetched over RPC, and on-demand fetches fill the rest.
        """
        lock = self._build_locks.setdefault(chain_id, asyncio.Lock())
        async with lock:
            logger.info(f"Building liquidity graph for chain {chain_id}")
            try:
                edges = await self.fetcher.fetch_bulk(
                    chain_id, self.bulk_fetch_limit, self.bulk_min_liquidity_usd
                )
            except Exception as e:
                logger.error(f"Bulk fetch crashed for chain {chain_id}: {type(e).__name__}: {e}")
                edges = []

            if edges:
                edges = await self._verify_top_pairs(edges)
            else:
                logger.warning(f"No indexer data for chain {chain_id}, falling back to common pairs")
                edges = await self._fetch_pairs(chain_id, self._default_common_pairs(chain_id))

            await self.cache.store_bulk(edges)

            async with self._publish_lock:
                # on-demand inserts that are still fresh in the hot tier survive the rebuild
                fresh_ids = {e.id for e in edges}
                carried = [e for e in self.cache.hot_edges(chain_id) if e.id not in fresh_ids]
                all_edges = edges + carried
                previous = self.get_graph(chain_id)
                graph = LiquidityGraph.from_edges(
                    chain_id,
                    all_edges,
                    self._nodes_for(chain_id, all_edges),
                    version=previous.version + 1,
                )
                if self.max_pair_age_seconds is not None:
                    graph = graph.pruned(max_age_seconds=self.max_pair_age_seconds)
                self._graphs[chain_id] = graph

            stats = graph.get_stats()
            logger.info(
                f"Graph for chain {chain_id} v{stats.version}: {stats.node_count} tokens, "
                f"{stats.edge_count} pairs, ${stats.total_liquidity_usd:,.0f} liquidity"
            )
            return stats

    async def _verify_top_pairs(self, edges: list[PairEdge]) -> list[PairEdge]:
        candidates = [e for e in edges if e.liquidity_usd >= self.rpc_verify_min_liquidity_usd]
        candidates.sort(key=lambda e: -e.liquidity_usd)
        candidates = candidates[: self.rpc_verify_count]
        if not candidates:
            return edges
        verified = {e.id: e for e in await self.fetcher.verify_pairs(candidates)}
        return [verified.get(e.id, e) for e in edges]

    def _default_common_pairs(self, chain_id: int) -> list[tuple[str, str]]:
        chain = self.chains.get_canonical_chain(chain_id)
        if not chain.is_evm:
            return []
        native = chain.wrapped_native.address
        return [(native, t.address) for t in chain.tokens]

    def _endpoint_common_pairs(self, chain_id: int, tokens: list[str]) -> list[tuple[str, str]]:
        chain = self.chains.get_canonical_chain(chain_id)
        hubs = [chain.wrapped_native.address]
        for symbol in COMMON_STABLES:
            stable = chain.token_by_symbol(symbol)
            if stable:
                hubs.append(stable.address)

        pairs = list(combinations(tokens, 2))
        for token in tokens:
            pairs.extend((hub, token) for hub in hubs)
        pairs.extend(combinations(hubs, 2))

        unique = {}
        for a, b in pairs:
            if a.lower() == b.lower():
                continue
            unique[tuple(sorted((a.lower(), b.lower())))] = (a, b)
        return list(unique.values())

    async def _fetch_pairs(self, chain_id: int, pairs: list[tuple[str, str]]) -> list[PairEdge]:
        results = await asyncio.gather(
            *(self.fetcher.fetch_pair(chain_id, a, b) for a, b in pairs),
            return_exceptions=True,
        )
        edges = []
        for (a, b), result in zip(pairs, results):
            if isinstance(result, Exception):
                logger.warning(f"Skipping pair {a}/{b} on chain {chain_id}: {type(result).__name__}: {result}")
            elif result is not None:
                edges.append(result)
        return edges

    async def fetch_on_demand(self, chain_id: int, token_a: str, token_b: str) -> Optional[PairEdge]:
        """Fetch one pair the graph lacks and publish it through the hot tier."""
        venue = self.chains.get_canonical_chain(chain_id).dex_name or ""
        # the cache promotes a cached pair itself, and only once it has been refreshed
        edge = await self.cache.get_pair(chain_id, token_a, token_b, venue, refresh=self.fetcher.refresh_edge)
        if edge is not None:
            await self._publish(chain_id, [edge])
            return edge

        edge = await self.fetcher.fetch_pair(chain_id, token_a, token_b)
        if edge is None:
            return None
        self.cache.store_cold(edge)
        await self.cache.insert_hot(edge)
        await self._publish(chain_id, [edge])
        return edge

    async def ensure_common_pairs(self, chain_id: int, tokens: list[str]) -> int:
        """Fetch the endpoints' pairs with the native-wrapped token and major stables.

        Returns the number of edges published.
        """
        chain = self.chains.get_canonical_chain(chain_id)
        if not chain.is_evm:
            return 0
        edges = await self._fetch_pairs(chain_id, self._endpoint_common_pairs(chain_id, tokens))
        if not edges:
            logger.info(f"No common pairs found on chain {chain_id} for {tokens}")
            return 0
        for edge in edges:
            self.cache.store_cold(edge)
            await self.cache.insert_hot(edge)
        await self._publish(chain_id, edges)
        logger.info(f"Published {len(edges)} on-demand pairs on chain {chain_id}")
        return len(edges)

    async def _publish(self, chain_id: int, edges: list[PairEdge]) -> None:
        async with self._publish_lock:
            current = self.get_graph(chain_id)
            self._graphs[chain_id] = current.with_edges(edges, self._nodes_for(chain_id, edges))
