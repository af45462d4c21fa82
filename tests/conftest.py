"""Pytest configuration and fixtures."""

import asyncio
import os

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["REDIS_URL"] = ""
os.environ["ONEINCH_API_KEY"] = ""
os.environ["SOCKET_API_KEY"] = ""

from crossroute.chains import TokenRegistry, get_chain_registry
from crossroute.config import Settings
from crossroute.graph.builder import GraphBuilder
from crossroute.graph.cache import CacheManager
from crossroute.graph.liquidity_graph import LiquidityGraph
from crossroute.graph.models import PairEdge
from crossroute.pathfinding.engine import PathfindingEngine

from factories import BSC, BSC_ETH, E18, TWC, WBNB, FakePairFetcher, make_edge


@pytest.fixture(scope="session")
def event_loop():
    """Create event loop for async tests."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def chains():
    return get_chain_registry()


@pytest.fixture
def tokens(chains) -> TokenRegistry:
    registry = TokenRegistry(chains)
    registry.register(BSC, TWC, "TWC", 18)
    return registry


@pytest.fixture
def twc_edges() -> list[PairEdge]:
    """TWC-WBNB ($50k) and WBNB-ETH ($2M) on BSC, no direct TWC-ETH pool."""
    return [
        make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000),
        make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_000_000),
    ]


@pytest.fixture
def cache() -> CacheManager:
    return CacheManager()


@pytest.fixture
def fetcher() -> FakePairFetcher:
    return FakePairFetcher()


@pytest.fixture
def builder(fetcher, cache, tokens, chains) -> GraphBuilder:
    return GraphBuilder(fetcher, cache, tokens, chains=chains)


@pytest.fixture
def twc_graph(builder, twc_edges) -> LiquidityGraph:
    """The TWC graph, published as BSC's current snapshot."""
    graph = LiquidityGraph.from_edges(BSC, twc_edges, builder._nodes_for(BSC, twc_edges))
    builder.set_graph(graph)
    return graph


@pytest.fixture
def engine(builder, tokens, chains) -> PathfindingEngine:
    return PathfindingEngine(builder, tokens, chains=chains)
