"""Request-level fan-out over providers, the graph and the cross-chain composer."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from crossroute.composer import CrossChainRouteComposer
from crossroute.errors import (
    BridgeUnavailable,
    InsufficientLiquidity,
    NoPathFound,
    RoutingError,
)
from crossroute.graph.builder import GraphBuilder
from crossroute.pathfinding.engine import GRAPH_PROVIDER, PathfindingEngine
from crossroute.routing.base import IMPACT_UNKNOWN, RouterParams, RouterRoute
from crossroute.routing.registry import ProviderRegistry
from crossroute.scoring import DEFAULT_WEIGHTS, ScoringWeights, select_best

logger = logging.getLogger(__name__)

COMPOSER_SOURCE = "composer"


@dataclass
class AggregationResult:
    """Candidates from every source that answered before the deadline."""

    candidates: list[RouterRoute] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)


class QuoteAggregator:
    """Runs every eligible source in parallel under one shared deadline."""

    def __init__(
        self,
        registry: ProviderRegistry,
        engine: PathfindingEngine,
        builder: GraphBuilder,
        composer: Optional[CrossChainRouteComposer] = None,
        deadline_seconds: float = 9.0,
        max_price_impact: float = 15.0,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self.registry = registry
        self.engine = engine
        self.builder = builder
        self.composer = composer
        self.deadline_seconds = deadline_seconds
        self.max_price_impact = max_price_impact
        self.weights = weights

    async def aggregate(self, params: RouterParams) -> AggregationResult:
        """Collect candidate routes for a request.

        Raises:
            InsufficientLiquidity: only over-impact graph paths were found
            NoPathFound: nothing was found for a same-chain request
            BridgeUnavailable: nothing was found for a cross-chain request
        """
        result = AggregationResult()
        rejected: list[RouterRoute] = []

        await self._run_sources(params, self._source_tasks(params), result, rejected)

        if not result.candidates and not params.is_cross_chain:
            if await self._fetch_on_demand(params):
                logger.info(f"Rerunning graph search after on-demand fetch on chain {params.from_chain}")
                tasks = {asyncio.create_task(self.engine.find_routes(params)): GRAPH_PROVIDER}
                await self._run_sources(params, tasks, result, rejected, record_source=False)

        if result.candidates:
            logger.info(
                f"Got {len(result.candidates)} candidate(s) for {params.from_chain}:{params.from_token} -> "
                f"{params.to_chain}:{params.to_token} from {len(result.sources)} source(s)"
            )
            return result

        if rejected:
            lowest = min(r.price_impact for r in rejected)
            raise InsufficientLiquidity(
                lowest,
                f"Only paths with price impact of {lowest:.2f}% or more were found "
                f"(allowed {self._impact_limit(params):.2f}%)",
            )

        tried = ", ".join(result.sources) or "none"
        reasons = "; ".join(result.errors)
        if params.is_cross_chain:
            raise BridgeUnavailable(
                f"No cross-chain route from chain {params.from_chain} to {params.to_chain}. "
                f"Sources tried: {tried}" + (f" ({reasons})" if reasons else ""),
                {"sources": result.sources, "errors": result.errors},
            )
        raise NoPathFound(
            f"No route for {params.from_token} -> {params.to_token} on chain {params.from_chain}. "
            f"Sources tried: {tried}" + (f" ({reasons})" if reasons else ""),
            result.sources,
        )

    def _source_tasks(self, params: RouterParams) -> dict[asyncio.Task, str]:
        tasks = {}
        eligible = self.registry.get_eligible(params.from_chain, params.to_chain, params.from_token, params.to_token)
        for provider in eligible:
            logger.debug(f"Requesting route from {provider.name}...")
            tasks[asyncio.create_task(provider.get_route(params))] = provider.name

        if not params.is_cross_chain:
            tasks[asyncio.create_task(self.engine.find_routes(params))] = GRAPH_PROVIDER
        elif self.composer is not None:
            tasks[asyncio.create_task(self._compose(params))] = COMPOSER_SOURCE
        return tasks

    async def _run_sources(
        self,
        params: RouterParams,
        tasks: dict[asyncio.Task, str],
        result: AggregationResult,
        rejected: list[RouterRoute],
        record_source: bool = True,
    ) -> None:
        if record_source:
            result.sources.extend(tasks.values())
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks.keys(), timeout=self.deadline_seconds)
        for task in pending:
            task.cancel()
            error_msg = f"{tasks[task]}: timed out after {self.deadline_seconds}s"
            logger.warning(error_msg)
            result.errors.append(error_msg)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            name = tasks[task]
            error = task.exception()
            if error is not None:
                if isinstance(error, RoutingError):
                    error_msg = f"{name}: {error.message}"
                else:
                    error_msg = f"{name}: {type(error).__name__}: {error}"
                logger.warning(f"{name} route failed: {error_msg}")
                result.errors.append(error_msg)
                continue

            routes = task.result()
            if routes is None:
                logger.debug(f"{name} returned no route")
                continue
            if isinstance(routes, RouterRoute):
                routes = [routes]
            for route in routes:
                if self._exceeds_impact(route, params):
                    logger.debug(f"Rejected {route.route_id}: price impact {route.price_impact:.2f}%")
                    rejected.append(route)
                else:
                    result.candidates.append(route)

    def _impact_limit(self, params: RouterParams) -> float:
        return min(params.slippage, self.max_price_impact)

    def _exceeds_impact(self, route: RouterRoute, params: RouterParams) -> bool:
        if route.provider != GRAPH_PROVIDER:
            if route.price_impact_source == IMPACT_UNKNOWN:
                logger.debug(f"{route.route_id}: price impact unknown, impact ceiling not applied")
                return False
            return route.price_impact > self.max_price_impact
        return route.price_impact > self._impact_limit(params)

    async def _fetch_on_demand(self, params: RouterParams) -> bool:
        """Pull missing pairs for the endpoints into the graph. True when anything was added."""
        chains = self.engine.chains
        chain = chains.get_canonical_chain(params.from_chain)
        if not chain.is_evm:
            return False

        from_graph = chains.to_graph_address(params.from_chain, params.from_token)
        to_graph = chains.to_graph_address(params.to_chain, params.to_token)
        if from_graph == to_graph:
            return False

        direct = await self.builder.fetch_on_demand(params.from_chain, from_graph, to_graph)
        common = await self.builder.ensure_common_pairs(params.from_chain, [from_graph, to_graph])
        logger.info(
            f"On-demand fetch on chain {params.from_chain}: direct pair {'found' if direct else 'missing'}, "
            f"{common} common pair(s)"
        )
        return direct is not None or common > 0

    async def same_chain_quote(self, params: RouterParams) -> Optional[RouterRoute]:
        """Best same-chain route, or None. Used for the composer's swap legs."""
        try:
            result = await self.aggregate(params)
        except RoutingError as e:
            logger.debug(f"No same-chain leg on chain {params.from_chain}: {e.message}")
            return None
        best, _ = select_best(result.candidates, params.order, self.weights)
        return best

    async def _compose(self, params: RouterParams) -> RouterRoute:
        route = await self.composer.compose(params, self.same_chain_quote)
        return self.composer.to_router_route(route, params)

    def pair_liquidity_usd(self, params: RouterParams) -> Optional[float]:
        """Liquidity of the requested pair as seen by the graph, or None when unknown."""
        if params.is_cross_chain:
            return None
        chains = self.engine.chains
        if not chains.get_canonical_chain(params.from_chain).is_evm:
            return None
        graph = self.builder.get_graph(params.from_chain)
        from_graph = chains.to_graph_address(params.from_chain, params.from_token)
        to_graph = chains.to_graph_address(params.to_chain, params.to_token)

        direct = graph.get_edges_between(from_graph, to_graph)
        if direct:
            return max(edge.liquidity_usd for edge in direct)
        from_node, to_node = graph.get_node(from_graph), graph.get_node(to_graph)
        if from_node is None or to_node is None:
            return None
        return min(from_node.liquidity_usd, to_node.liquidity_usd)
