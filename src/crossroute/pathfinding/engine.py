"""Same-chain route discovery over the liquidity graph."""

import asyncio
import hashlib
import logging
import math
from decimal import Decimal
from typing import Optional

from crossroute.chains import ChainRegistry, TokenRegistry, get_chain_registry
from crossroute.errors import RoutingError
from crossroute.gas import GasEstimator
from crossroute.graph.builder import GraphBuilder
from crossroute.graph.liquidity_graph import LiquidityGraph
from crossroute.pathfinding.amm import FEE_DENOMINATOR, PathQuote, best_hop, quote_edges
from crossroute.pathfinding.intermediaries import IntermediarySelector
from crossroute.pathfinding.search import astar_path, bfs_paths, dijkstra_path, quote_token_path
from crossroute.prices import PriceOracle
from crossroute.routing.base import (
    FeeBreakdown,
    RouterParams,
    RouterRoute,
    RouteStep,
    StepType,
    TokenAmount,
    route_expiry,
)
from crossroute.routing.transformers import AmountTransformer
from crossroute.rpc import encode_swap_exact_tokens

logger = logging.getLogger(__name__)

GRAPH_PROVIDER = "graph"

ALGORITHM_BFS = "bfs"
ALGORITHM_DIJKSTRA = "dijkstra"
ALGORITHM_ASTAR = "astar"


class PathfindingEngine:
    """Finds multi-hop paths in a chain's graph and turns them into routes."""

    def __init__(
        self,
        builder: GraphBuilder,
        tokens: TokenRegistry,
        gas: Optional[GasEstimator] = None,
        prices: Optional[PriceOracle] = None,
        chains: Optional[ChainRegistry] = None,
        selector: Optional[IntermediarySelector] = None,
        bfs_node_limit: int = 1000,
        dijkstra_node_limit: int = 10_000,
        max_bfs_paths: int = 50,
        max_routes: int = 5,
        max_price_impact: float = 15.0,
        astar_min_liquidity_usd: float = 10_000.0,
        quote_ttl_seconds: int = 60,
    ):
        self.builder = builder
        self.tokens = tokens
        self.chains = chains or get_chain_registry()
        self.gas = gas or GasEstimator(chains=self.chains)
        self.prices = prices
        self.selector = selector or IntermediarySelector(self.chains)
        self.bfs_node_limit = bfs_node_limit
        self.dijkstra_node_limit = dijkstra_node_limit
        self.max_bfs_paths = max_bfs_paths
        self.max_routes = max_routes
        self.max_price_impact = max_price_impact
        self.astar_min_liquidity_usd = astar_min_liquidity_usd
        self.quote_ttl_seconds = quote_ttl_seconds

    def select_algorithm(self, graph: LiquidityGraph) -> str:
        if graph.node_count < self.bfs_node_limit:
            return ALGORITHM_BFS
        if graph.node_count < self.dijkstra_node_limit:
            return ALGORITHM_DIJKSTRA
        return ALGORITHM_ASTAR

    def find_paths(
        self,
        graph: LiquidityGraph,
        from_token: str,
        to_token: str,
        amount_in: int,
        max_hops: int = 3,
    ) -> list[PathQuote]:
        """Synchronous, CPU-bound search. Returns [] when nothing connects within ``max_hops``."""
        from_token, to_token = from_token.lower(), to_token.lower()
        if amount_in <= 0 or not graph.has_token(from_token) or not graph.has_token(to_token):
            return []

        intermediaries = set(self.selector.select(graph, from_token, to_token))
        algorithm = self.select_algorithm(graph)
        quotes: list[PathQuote] = []

        if algorithm == ALGORITHM_BFS:
            for tokens in bfs_paths(graph, from_token, to_token, max_hops, intermediaries, self.max_bfs_paths):
                quote = quote_token_path(graph, tokens, amount_in)
                if quote is not None:
                    quotes.append(quote)
        else:
            search = dijkstra_path if algorithm == ALGORITHM_DIJKSTRA else astar_path
            kwargs = {} if algorithm == ALGORITHM_DIJKSTRA else {"min_liquidity_usd": self.astar_min_liquidity_usd}
            quote = search(graph, from_token, to_token, amount_in, max_hops, intermediaries, **kwargs)
            if quote is not None:
                quotes.append(quote)

        direct = self._direct_quote(graph, from_token, to_token, amount_in)
        logger.debug(
            f"{algorithm} search on chain {graph.chain_id} ({graph.node_count} nodes): "
            f"{len(quotes)} paths, direct={'yes' if direct else 'no'}"
        )
        return self._rank(quotes, direct)

    def _direct_quote(self, graph: LiquidityGraph, from_token: str, to_token: str, amount_in: int) -> Optional[PathQuote]:
        hop = best_hop(graph.get_edges_between(from_token, to_token), from_token, amount_in)
        if hop is None:
            return None
        quote = quote_edges([from_token, to_token], [hop[0]], amount_in)
        if quote is None or quote.price_impact > self.max_price_impact:
            return None
        return quote

    def _rank(self, quotes: list[PathQuote], direct: Optional[PathQuote]) -> list[PathQuote]:
        unique: dict[tuple, PathQuote] = {}
        for quote in quotes + ([direct] if direct else []):
            unique.setdefault(quote.key, quote)
        ranked = sorted(unique.values(), key=lambda q: (-q.amount_out, q.hops, q.key))
        selected = ranked[: self.max_routes]
        if direct is not None and all(q.key != direct.key for q in selected):
            selected = selected[: self.max_routes - 1] + [direct]
        return selected

    async def find_routes(self, params: RouterParams) -> list[RouterRoute]:
        """Graph-derived candidate routes for a same-chain request."""
        if params.is_cross_chain:
            return []
        chain = self.chains.get_canonical_chain(params.from_chain)
        if not chain.is_evm:
            return []

        from_graph = self.chains.to_graph_address(params.from_chain, params.from_token)
        to_graph = self.chains.to_graph_address(params.to_chain, params.to_token)
        try:
            from_decimals = await self.tokens.get_decimals(params.from_chain, params.from_token)
            to_decimals = await self.tokens.get_decimals(params.to_chain, params.to_token)
        except RoutingError as e:
            logger.debug(f"Graph search skipped: {e}")
            return []

        amount_raw = AmountTransformer.to_raw_int(params.amount, from_decimals)

        if from_graph == to_graph:
            route = await self._wrap_route(params, from_decimals)
            return [route] if route else []

        graph = self.builder.get_graph(params.from_chain)
        paths = await asyncio.to_thread(
            self.find_paths, graph, from_graph, to_graph, amount_raw, params.max_hops
        )
        routes = []
        for path in paths:
            routes.append(await self._to_route(params, path, from_decimals, to_decimals))
        return routes

    async def _wrap_route(self, params: RouterParams, decimals: int) -> Optional[RouterRoute]:
        from_native = self.chains.is_native(params.from_chain, params.from_token)
        to_native = self.chains.is_native(params.to_chain, params.to_token)
        if from_native == to_native:
            return None
        amount = AmountTransformer.normalize(params.amount)
        from_token = TokenAmount(params.from_chain, params.from_token, amount,
                                 self.tokens.get_symbol(params.from_chain, params.from_token), decimals)
        to_token = TokenAmount(params.to_chain, params.to_token, amount,
                               self.tokens.get_symbol(params.to_chain, params.to_token), decimals)
        step_type = StepType.WRAP if from_native else StepType.UNWRAP
        gas = await self.gas.estimate(params.from_chain, hops=1)
        return RouterRoute(
            provider=GRAPH_PROVIDER,
            route_id=f"graph-{params.from_chain}-{step_type.value}",
            from_token=from_token,
            to_token=to_token,
            steps=[RouteStep(step_type, params.from_chain, from_token, to_token)],
            exchange_rate=Decimal(1),
            price_impact=0.0,
            slippage=params.slippage,
            fees=FeeBreakdown(
                gas_native=gas.gas_native,
                gas_usd=gas.gas_usd,
                total_usd=gas.gas_usd,
                gas_estimated=gas.estimated,
            ),
            estimated_time=int(math.ceil(self.chains.get_canonical_chain(params.from_chain).block_time_seconds)),
            expires_at=route_expiry(self.quote_ttl_seconds),
        )

    def _token_amount(self, chain_id: int, address: str, raw: int, decimals: Optional[int] = None) -> TokenAmount:
        if decimals is None:
            info = self.tokens.lookup(chain_id, address)
            node = self.builder.get_graph(chain_id).get_node(address)
            decimals = info.decimals if info else (node.decimals if node else 18)
        return TokenAmount(
            chain_id,
            address,
            AmountTransformer.from_raw_int(raw, decimals),
            self.tokens.get_symbol(chain_id, address),
            decimals,
        )

    async def _to_route(
        self,
        params: RouterParams,
        path: PathQuote,
        from_decimals: int,
        to_decimals: int,
    ) -> RouterRoute:
        chain_id = params.from_chain
        chain = self.chains.get_canonical_chain(chain_id)
        from_token = self._token_amount(chain_id, params.from_token, path.amount_in, from_decimals)
        to_token = self._token_amount(chain_id, params.to_token, path.amount_out, to_decimals)

        steps: list[RouteStep] = []
        if self.chains.is_native(chain_id, params.from_token):
            wrapped = self._token_amount(chain_id, path.tokens[0], path.amount_in, from_decimals)
            steps.append(RouteStep(StepType.WRAP, chain_id, from_token, wrapped))

        protocol_usd = Decimal(0)
        last = len(path.edges) - 1
        for i, edge in enumerate(path.edges):
            hop_in = self._token_amount(chain_id, path.tokens[i], path.amounts[i], from_decimals if i == 0 else None)
            hop_out = self._token_amount(chain_id, path.tokens[i + 1], path.amounts[i + 1], to_decimals if i == last else None)
            steps.append(
                RouteStep(
                    StepType.SWAP,
                    chain_id,
                    hop_in,
                    hop_out,
                    venue=edge.venue,
                    details={"pair": edge.pair_address, "fee_bps": edge.fee_bps},
                )
            )
            protocol_usd += await self._fee_usd(chain_id, hop_in, edge.fee_bps)

        if self.chains.is_native(chain_id, params.to_token):
            wrapped = self._token_amount(chain_id, path.tokens[-1], path.amount_out, to_decimals)
            steps.append(RouteStep(StepType.UNWRAP, chain_id, wrapped, to_token))

        gas = await self.gas.estimate(chain_id, hops=path.hops, tx=self._gas_tx(params, path, chain))

        route_hash = hashlib.sha1("|".join(path.key).encode()).hexdigest()[:12]
        return RouterRoute(
            provider=GRAPH_PROVIDER,
            route_id=f"graph-{chain_id}-{route_hash}",
            from_token=from_token,
            to_token=to_token,
            steps=steps,
            exchange_rate=to_token.value / from_token.value if from_token.value else Decimal(0),
            price_impact=path.price_impact,
            slippage=params.slippage,
            fees=FeeBreakdown(
                protocol_usd=protocol_usd,
                gas_native=gas.gas_native,
                gas_usd=gas.gas_usd,
                total_usd=protocol_usd + gas.gas_usd,
                gas_estimated=gas.estimated,
            ),
            estimated_time=int(math.ceil(chain.block_time_seconds * (1 + path.hops))),
            expires_at=route_expiry(self.quote_ttl_seconds),
            raw={"path": path.tokens, "pairs": [e.pair_address for e in path.edges]},
        )

    async def _fee_usd(self, chain_id: int, hop_in: TokenAmount, fee_bps: int) -> Decimal:
        if self.prices is None:
            return Decimal(0)
        price = await self.prices.get_price_usd(chain_id, hop_in.address)
        if price is None:
            return Decimal(0)
        return hop_in.value * Decimal(fee_bps) / Decimal(FEE_DENOMINATOR) * price

    def _gas_tx(self, params: RouterParams, path: PathQuote, chain) -> Optional[dict]:
        """Router call to simulate when the caller supplied a sender."""
        if not params.recipient or not chain.router_address:
            return None
        if any(e.venue != chain.dex_name for e in path.edges):
            return None
        min_out = path.amount_out * (10_000 - int(params.slippage * 100)) // 10_000
        return {
            "from": params.recipient,
            "to": chain.router_address,
            "data": encode_swap_exact_tokens(path.amount_in, min_out, path.tokens, params.recipient),
        }
