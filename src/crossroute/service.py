"""Route service facade.

Validates a RouteRequest, drives the QuoteAggregator and returns a
RouteResponse. This service only quotes; it never builds or broadcasts
transactions.
"""

import logging
import time
from typing import Optional

from pydantic import ValidationError

from crossroute.aggregator import AggregationResult, QuoteAggregator
from crossroute.chains import ChainRegistry, TokenRegistry, get_chain_registry
from crossroute.composer import CrossChainRouteComposer
from crossroute.config import Settings, get_settings
from crossroute.contracts import RouteRequest, RouteResponse
from crossroute.errors import InvalidRequest, RoutingError
from crossroute.gas import GasEstimator
from crossroute.graph.builder import GraphBuilder
from crossroute.graph.cache import CacheManager
from crossroute.graph.pair_fetcher import PairFetcher
from crossroute.graph.updater import GraphUpdater
from crossroute.pathfinding.engine import PathfindingEngine
from crossroute.pathfinding.intermediaries import IntermediarySelector
from crossroute.prices import CoinGeckoPriceOracle
from crossroute.routing.base import RouterParams, RouterRoute
from crossroute.routing.factory import create_default_bridges, create_default_registry
from crossroute.routing.transformers import AmountTransformer
from crossroute.rpc import ChainRpcClient
from crossroute.scoring import ScoringWeights, select_best
from crossroute.slippage import AutoSlippageResolver, Exhausted

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RouteService:
    """Entry point consumed by the transport layer."""

    def __init__(
        self,
        aggregator: QuoteAggregator,
        settings: Optional[Settings] = None,
        updater: Optional[GraphUpdater] = None,
        chains: Optional[ChainRegistry] = None,
        resolver: Optional[AutoSlippageResolver] = None,
    ):
        self.aggregator = aggregator
        self.settings = settings or get_settings()
        self.updater = updater
        self.chains = chains or get_chain_registry()
        self.resolver = resolver or AutoSlippageResolver.from_settings(self.settings)
        self.weights = ScoringWeights.from_settings(self.settings)

    async def start(self) -> None:
        """Configure logging and start background graph maintenance."""
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logger.info(f"Environment: {self.settings.environment}")

        if self.updater is not None:
            self.updater.start()
            logger.info("Route service started")

    async def stop(self) -> None:
        if self.updater is not None:
            await self.updater.stop()
        cache = self.aggregator.builder.cache
        await cache.close()
        logger.info("Route service stopped")

    def validate(self, request: RouteRequest) -> RouterParams:
        """Check chains, addresses and amount; build the canonical params.

        Raises:
            InvalidRequest: the request cannot be routed as given
        """
        for side, token in (("from_token", request.from_token), ("to_token", request.to_token)):
            if not self.chains.is_supported(token.chain_id):
                raise InvalidRequest(
                    f"Unsupported chain {token.chain_id}",
                    {"field": side, "chain_id": token.chain_id},
                )
            if not self.chains.is_valid_address(token.chain_id, token.address):
                raise InvalidRequest(
                    f"Invalid token address {token.address!r} for chain {token.chain_id}",
                    {"field": side, "address": token.address},
                )

        if not AmountTransformer.is_valid(request.from_amount) or request.from_amount.strip("0.") == "":
            raise InvalidRequest(f"Invalid amount: {request.from_amount!r}", {"field": "from_amount"})

        if request.recipient and not self.chains.is_valid_address(request.to_token.chain_id, request.recipient):
            raise InvalidRequest(
                f"Invalid recipient {request.recipient!r} for chain {request.to_token.chain_id}",
                {"field": "recipient"},
            )

        same_token = (
            request.from_token.chain_id == request.to_token.chain_id
            and request.from_token.address.lower() == request.to_token.address.lower()
        )
        if same_token:
            raise InvalidRequest("Source and destination token are the same", {"field": "to_token"})

        slippage = request.slippage if request.slippage is not None else self.settings.default_slippage
        return RouterParams(
            from_chain=request.from_token.chain_id,
            from_token=request.from_token.address,
            to_chain=request.to_token.chain_id,
            to_token=request.to_token.address,
            amount=request.from_amount,
            slippage=slippage,
            recipient=request.recipient,
            order=request.order,
            max_hops=self.settings.max_hops,
        )

    async def get_route(self, request) -> RouteResponse:
        """Get the best route for a request.

        Args:
            request: RouteRequest or a plain dict with the same fields

        Returns:
            RouteResponse with the route, or an error payload
        """
        try:
            if not isinstance(request, RouteRequest):
                request = RouteRequest.model_validate(request)
            params = self.validate(request)
        except ValidationError as e:
            logger.info(f"Rejected route request: {e.error_count()} validation error(s)")
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            return self._error_response(InvalidRequest("Invalid route request", {"errors": errors}))
        except InvalidRequest as e:
            logger.info(f"Rejected route request: {e.message}")
            return self._error_response(e)

        logger.info(
            f"Finding route: {params.amount} {params.from_chain}:{params.from_token} -> "
            f"{params.to_chain}:{params.to_token} ({request.slippage_mode} slippage)"
        )

        try:
            if request.slippage_mode == "auto":
                route, alternatives, sources = await self._resolve_auto(params, request.slippage)
            else:
                route, alternatives, sources = await self._resolve_fixed(params)
        except RoutingError as e:
            fallback = await self._guaranteed_fallback(params, e)
            if fallback is None:
                logger.warning(f"No route: {e.code}: {e.message}")
                return self._error_response(e)
            route, alternatives, sources = fallback

        logger.info(
            f"Selected route: {route.provider} - {route.to_token.amount} {route.to_token.symbol or route.to_token.address} "
            f"(slippage {route.slippage}%, {len(alternatives)} alternative(s))"
        )
        return RouteResponse(
            route=route.to_dict(),
            alternatives=[alt.to_dict() for alt in alternatives],
            sources=sources,
            timestamp=_now_ms(),
            expires_at=int(route.expires_at * 1000),
        )

    async def _select(self, params: RouterParams) -> tuple[RouterRoute, list[RouterRoute], AggregationResult]:
        result = await self.aggregator.aggregate(params)
        best, alternatives = select_best(result.candidates, params.order, self.weights)
        return best, alternatives, result

    async def _resolve_fixed(self, params: RouterParams) -> tuple[RouterRoute, list[RouterRoute], list[str]]:
        best, alternatives, result = await self._select(params)
        return best, alternatives, result.sources

    async def _resolve_auto(
        self,
        params: RouterParams,
        requested: Optional[float],
    ) -> tuple[RouterRoute, list[RouterRoute], list[str]]:
        attempts: dict[float, tuple[list[RouterRoute], list[str]]] = {}

        async def quote(slippage: float) -> Optional[RouterRoute]:
            best, alternatives, result = await self._select(params.with_slippage(slippage))
            attempts[slippage] = (alternatives, result.sources)
            return best

        outcome = await self.resolver.resolve(
            quote,
            liquidity_usd=self.aggregator.pair_liquidity_usd(params),
            initial_slippage=requested,
        )
        if isinstance(outcome, Exhausted):
            raise outcome.to_error()

        alternatives, sources = attempts[outcome.applied_slippage]
        return outcome.route, alternatives, sources

    async def _guaranteed_fallback(
        self,
        params: RouterParams,
        error: RoutingError,
    ) -> Optional[tuple[RouterRoute, list[RouterRoute], list[str]]]:
        """One last attempt at the auto-slippage ceiling, when enabled."""
        if not self.settings.guaranteed_route_fallback or isinstance(error, InvalidRequest):
            return None
        ceiling = self.settings.max_auto_slippage
        if params.slippage >= ceiling:
            return None

        logger.info(f"Guaranteed-route fallback at {ceiling}% after {error.code}")
        try:
            best, alternatives, result = await self._select(params.with_slippage(ceiling))
        except RoutingError as e:
            logger.info(f"Guaranteed-route fallback failed: {e.message}")
            return None
        return best, alternatives, result.sources

    def _error_response(self, error: RoutingError) -> RouteResponse:
        now = _now_ms()
        return RouteResponse(
            timestamp=now,
            expires_at=now,
            error=error.message,
            error_code=error.code,
            details=error.details,
        )


def create_route_service(settings: Optional[Settings] = None) -> RouteService:
    """Wire every component from settings."""
    settings = settings or get_settings()
    chains = get_chain_registry()

    rpc = ChainRpcClient(timeout=settings.provider_timeout_seconds)
    tokens = TokenRegistry(chains, rpc=rpc)
    prices = CoinGeckoPriceOracle(api_key=settings.coingecko_api_key or None, chains=chains)
    gas = GasEstimator(rpc=rpc, prices=prices, chains=chains, gas_per_hop=settings.gas_per_hop)

    fetcher = PairFetcher(rpc, tokens, prices=prices, chains=chains, thegraph_api_key=settings.thegraph_api_key or None)
    cache = CacheManager.from_settings(settings)
    builder = GraphBuilder(
        fetcher,
        cache,
        tokens,
        chains=chains,
        bulk_fetch_limit=settings.bulk_fetch_limit,
        bulk_min_liquidity_usd=settings.bulk_min_liquidity_usd,
        rpc_verify_count=settings.rpc_verify_count,
        rpc_verify_min_liquidity_usd=settings.rpc_verify_min_liquidity_usd,
        max_pair_age_seconds=settings.max_pair_age_seconds,
    )
    engine = PathfindingEngine(
        builder,
        tokens,
        gas=gas,
        prices=prices,
        chains=chains,
        selector=IntermediarySelector(
            chains,
            min_liquidity_usd=settings.intermediary_min_liquidity_usd,
            max_candidates=settings.max_intermediaries,
        ),
        bfs_node_limit=settings.bfs_node_limit,
        dijkstra_node_limit=settings.dijkstra_node_limit,
        max_bfs_paths=settings.max_bfs_paths,
        max_routes=settings.max_graph_routes,
        max_price_impact=settings.max_price_impact_percent,
        quote_ttl_seconds=settings.quote_ttl_seconds,
    )
    composer = CrossChainRouteComposer(
        create_default_bridges(tokens, gas, settings),
        tokens=tokens,
        chains=chains,
        quote_ttl_seconds=settings.quote_ttl_seconds,
    )
    aggregator = QuoteAggregator(
        create_default_registry(tokens, gas, settings),
        engine,
        builder,
        composer=composer,
        deadline_seconds=settings.request_deadline_seconds,
        max_price_impact=settings.max_price_impact_percent,
        weights=ScoringWeights.from_settings(settings),
    )
    updater = GraphUpdater(builder, settings.graph_chains, settings.graph_refresh_interval_seconds)
    return RouteService(aggregator, settings=settings, updater=updater, chains=chains)
