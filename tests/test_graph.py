"""Tests for the liquidity graph, its cache tiers and the builder."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, patch

import pytest

from crossroute.chains import TokenCategory
from crossroute.graph.builder import GraphBuilder
from crossroute.graph.cache import CacheManager, SharedCache, TTLCache, pair_key
from crossroute.graph.liquidity_graph import LiquidityGraph
from crossroute.graph.models import PairEdge
from crossroute.graph.updater import GraphUpdater

from factories import BSC, BSC_CAKE, BSC_ETH, BSC_USDT, E18, TWC, WBNB, FakePairFetcher, make_edge


class TestPairEdge:
    """Tests for PairEdge."""

    def test_create_sorts_tokens_and_reserves(self):
        """Test token order is normalized with reserves kept aligned."""
        edge = make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_000_000)
        assert edge.token_a == BSC_ETH
        assert edge.token_b == WBNB
        assert edge.reserve_a == 333 * E18
        assert edge.reserve_b == 1_640 * E18

    def test_reserves_for_direction(self):
        """Test reserves are returned in swap direction."""
        edge = make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000)
        assert edge.reserves_for(TWC) == (50_000 * E18, 41 * E18)
        assert edge.reserves_for(WBNB) == (41 * E18, 50_000 * E18)
        assert edge.other(TWC) == WBNB

    def test_same_pool_same_id_regardless_of_order(self):
        """Test edge identity ignores token order."""
        a = make_edge(TWC, WBNB, 1, 2, 10)
        b = make_edge(WBNB, TWC, 2, 1, 10)
        assert a.id == b.id
        assert a.reserves_for(TWC) == b.reserves_for(TWC)

    def test_refreshed_replaces_liquidity(self):
        """Test refreshing reserves always refreshes the liquidity estimate."""
        edge = make_edge(TWC, WBNB, 100, 200, 50_000, updated_at=time.time() - 1000)
        fresh = edge.refreshed(150, 300, 75_000)
        assert fresh.liquidity_usd == 75_000
        assert fresh.updated_at > edge.updated_at
        assert edge.reserve_a == 100

    def test_dict_round_trip(self):
        """Test serialization used by the warm tier."""
        edge = make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000)
        assert PairEdge.from_dict(json.loads(json.dumps(edge.to_dict()))) == edge


class TestLiquidityGraph:
    """Tests for LiquidityGraph snapshots."""

    def test_node_liquidity_is_sum_of_edges(self, twc_graph):
        """Test node liquidity aggregates incident pools."""
        assert twc_graph.node_count == 3
        assert twc_graph.edge_count == 2
        assert twc_graph.get_node(WBNB).liquidity_usd == 2_050_000
        assert twc_graph.get_node(TWC).liquidity_usd == 50_000

    def test_node_categories(self, twc_graph):
        """Test nodes built by the builder carry their category."""
        assert twc_graph.get_node(WBNB).category == TokenCategory.NATIVE
        assert twc_graph.get_node(BSC_ETH).category == TokenCategory.BLUECHIP

    def test_get_neighbors_with_floor(self, twc_graph):
        """Test neighbors are filtered by liquidity and sorted descending."""
        neighbors = twc_graph.get_neighbors(WBNB)
        assert [e.liquidity_usd for e in neighbors] == [2_000_000, 50_000]
        assert len(twc_graph.get_neighbors(WBNB, min_liquidity_usd=100_000)) == 1

    def test_get_edges_between(self, twc_graph):
        """Test pool lookup by token pair."""
        assert len(twc_graph.get_edges_between(TWC, WBNB)) == 1
        assert twc_graph.get_edges_between(TWC, BSC_ETH) == []

    def test_with_edges_returns_new_snapshot(self, twc_graph):
        """Test adding edges leaves the original snapshot untouched."""
        extra = make_edge(BSC_ETH, BSC_USDT, 100 * E18, 300_000 * E18, 600_000)
        updated = twc_graph.with_edges([extra])

        assert updated.version == twc_graph.version + 1
        assert updated.edge_count == 3
        assert twc_graph.edge_count == 2
        assert not twc_graph.has_token(BSC_USDT)

    def test_edge_from_other_chain_rejected(self):
        """Test a graph only holds edges of its own chain."""
        edge = make_edge(TWC, WBNB, 1, 1, 1, chain_id=1)
        with pytest.raises(ValueError):
            LiquidityGraph.from_edges(BSC, [edge])

    def test_pruned_drops_stale_edges(self):
        """Test stale edges are pruned."""
        fresh = make_edge(TWC, WBNB, 1, 1, 50_000)
        stale = make_edge(WBNB, BSC_ETH, 1, 1, 2_000_000, updated_at=time.time() - 7200)
        graph = LiquidityGraph.from_edges(BSC, [fresh, stale]).pruned(max_age_seconds=3600)
        assert graph.edge_count == 1
        assert not graph.has_token(BSC_ETH)

    def test_stats(self, twc_graph):
        """Test graph statistics."""
        stats = twc_graph.get_stats()
        assert stats.edge_count == 2
        assert stats.total_liquidity_usd == 2_050_000
        assert stats.avg_liquidity_per_edge == 1_025_000


class TestTTLCache:
    """Tests for the in-process TTL cache."""

    def test_expiry(self):
        """Test entries vanish after their TTL."""
        cache = TTLCache(ttl_seconds=10)
        with patch("time.time", return_value=1000.0):
            cache.set("a", 1)
        with patch("time.time", return_value=1005.0):
            assert cache.get("a") == 1
        with patch("time.time", return_value=1011.0):
            assert cache.get("a") is None

    def test_size_cap_evicts_oldest(self):
        """Test the size cap evicts the oldest entries."""
        cache = TTLCache(ttl_seconds=1000, max_entries=10)
        for i in range(10):
            with patch("time.time", return_value=1000.0 + i):
                cache.set(f"k{i}", i)
        with patch("time.time", return_value=1020.0):
            cache.set("new", 99)
            assert cache.get("k0") is None
            assert cache.get("k9") == 9
            assert cache.get("new") == 99
        assert len(cache) == 10


class TestCacheManager:
    """Tests for the hot/warm/cold tiers."""

    @pytest.mark.asyncio
    async def test_store_bulk_routes_by_liquidity(self, cache):
        """Test bulk edges land in the tier matching their liquidity."""
        edges = [
            make_edge(WBNB, BSC_USDT, 1, 1, 5_000_000),
            make_edge(WBNB, BSC_CAKE, 1, 1, 500_000),
            make_edge(TWC, WBNB, 1, 1, 50_000),
        ]
        counts = await cache.store_bulk(edges)

        assert counts == {"hot": 1, "warm": 1, "skipped": 1}
        assert len(cache.hot_edges(BSC)) == 1
        assert await cache.warm.get(pair_key(BSC, WBNB, BSC_CAKE, "pancakeswap")) is not None

    @pytest.mark.asyncio
    async def test_hot_hit(self, cache):
        """Test hot tier is consulted first."""
        edge = make_edge(WBNB, BSC_USDT, 1, 1, 5_000_000)
        await cache.insert_hot(edge)
        refresh = AsyncMock()

        assert await cache.get_pair(BSC, BSC_USDT, WBNB, "pancakeswap", refresh=refresh) == edge
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_warm_hit_promoted_only_after_refresh(self, cache):
        """Test a warm pair reaches the hot tier only with refreshed data."""
        stale = make_edge(WBNB, BSC_USDT, 100, 100, 2_000_000, updated_at=time.time() - 600)
        await cache.store_warm(stale)

        # no refresher: returned as-is, not promoted
        assert await cache.get_pair(BSC, WBNB, BSC_USDT, "pancakeswap") == stale
        assert cache.hot_edges(BSC) == []

        # refresher fails: still not promoted
        failing = AsyncMock(return_value=None)
        assert await cache.get_pair(BSC, WBNB, BSC_USDT, "pancakeswap", refresh=failing) == stale
        assert cache.hot_edges(BSC) == []

        fresh = stale.refreshed(120, 80, 2_100_000)
        working = AsyncMock(return_value=fresh)
        assert await cache.get_pair(BSC, WBNB, BSC_USDT, "pancakeswap", refresh=working) == fresh
        assert cache.hot_edges(BSC) == [fresh]

    @pytest.mark.asyncio
    async def test_cold_hit_promoted_to_warm(self, cache):
        """Test a refreshed mid-liquidity cold pair is promoted to warm."""
        edge = make_edge(TWC, WBNB, 1, 1, 200_000)
        cache.store_cold(edge)
        fresh = edge.refreshed(2, 2, 250_000)

        result = await cache.get_pair(BSC, TWC, WBNB, "pancakeswap", refresh=AsyncMock(return_value=fresh))

        assert result == fresh
        warm = json.loads(await cache.warm.get(pair_key(BSC, TWC, WBNB, "pancakeswap")))
        assert warm["liquidity_usd"] == 250_000

    @pytest.mark.asyncio
    async def test_venues_cached_separately(self, cache):
        """Test pools of the same pair on two venues do not overwrite each other."""
        pancake = make_edge(WBNB, BSC_USDT, 100, 100, 5_000_000)
        biswap = make_edge(WBNB, BSC_USDT, 50, 50, 2_000_000, venue="biswap", fee_bps=10)
        await cache.insert_hot(pancake)
        await cache.insert_hot(biswap)
        cache.store_cold(pancake)
        cache.store_cold(biswap)

        assert len(cache.hot_edges(BSC)) == 2
        assert await cache.get_pair(BSC, BSC_USDT, WBNB, "pancakeswap") == pancake
        assert await cache.get_pair(BSC, BSC_USDT, WBNB, "biswap") == biswap
        assert cache.cold.get(pair_key(BSC, WBNB, BSC_USDT, "biswap")) == biswap

    def test_shared_cache_interface_is_abstract(self):
        """Test a warm backend must implement get and set."""
        with pytest.raises(TypeError):
            SharedCache()

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        """Test unknown pairs return None."""
        assert await cache.get_pair(BSC, TWC, BSC_ETH, "pancakeswap") is None

    def test_from_settings_without_redis(self, settings):
        """Test the warm tier stays in-process without a Redis URL."""
        cache = CacheManager.from_settings(settings)
        assert cache.hot_min_liquidity_usd == settings.hot_min_liquidity_usd
        assert type(cache.warm).__name__ == "MemorySharedCache"


class TestGraphBuilder:
    """Tests for GraphBuilder."""

    @pytest.mark.asyncio
    async def test_build_from_bulk(self, tokens, chains):
        """Test a rebuild publishes the bulk-fetched pairs."""
        fetcher = FakePairFetcher(bulk=[
            make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000),
            make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_000_000),
        ])
        builder = GraphBuilder(fetcher, CacheManager(), tokens, chains=chains)

        stats = await builder.build_graph(BSC)
        again = await builder.build_graph(BSC)

        assert stats.edge_count == 2
        assert again.version > stats.version
        assert builder.get_graph(BSC).has_token(TWC)

    @pytest.mark.asyncio
    async def test_top_pairs_reverified(self, tokens, chains):
        """Test high-liquidity bulk pairs are refreshed before publishing."""
        old = make_edge(WBNB, BSC_ETH, 1_000 * E18, 200 * E18, 2_000_000, updated_at=time.time() - 7200)
        current = make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_500_000)
        fetcher = FakePairFetcher(pairs=[current], bulk=[old])
        builder = GraphBuilder(fetcher, CacheManager(), tokens, chains=chains)

        await builder.build_graph(BSC)

        edge = builder.get_graph(BSC).get_edges_between(WBNB, BSC_ETH)[0]
        assert edge.liquidity_usd == 2_500_000
        assert fetcher.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_stale_pairs_pruned(self, tokens, chains):
        """Test pairs older than the age limit are pruned on rebuild."""
        stale = make_edge(TWC, WBNB, 1, 1, 50_000, updated_at=time.time() - 7200)
        builder = GraphBuilder(FakePairFetcher(bulk=[stale]), CacheManager(), tokens, chains=chains)

        stats = await builder.build_graph(BSC)

        assert stats.edge_count == 0

    @pytest.mark.asyncio
    async def test_falls_back_to_common_pairs(self, tokens, chains):
        """Test an empty indexer result falls back to RPC common pairs."""
        common = make_edge(WBNB, BSC_USDT, 10_000 * E18, 6_000_000 * E18, 12_000_000)
        fetcher = FakePairFetcher(pairs=[common])
        builder = GraphBuilder(fetcher, CacheManager(), tokens, chains=chains)

        stats = await builder.build_graph(BSC)

        assert stats.edge_count == 1
        assert (BSC, WBNB, BSC_USDT) in fetcher.fetch_pair_calls

    @pytest.mark.asyncio
    async def test_hot_on_demand_edges_survive_rebuild(self, tokens, chains):
        """Test fresh on-demand pairs in the hot tier are carried into a rebuild."""
        on_demand = make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000)
        cache = CacheManager()
        await cache.insert_hot(on_demand)
        fetcher = FakePairFetcher(bulk=[make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_000_000)])
        builder = GraphBuilder(fetcher, cache, tokens, chains=chains)

        await builder.build_graph(BSC)

        graph = builder.get_graph(BSC)
        assert graph.edge_count == 2
        assert graph.get_edge(on_demand.id) == on_demand

    @pytest.mark.asyncio
    async def test_fetch_on_demand_publishes_new_snapshot(self, tokens, chains, twc_edges):
        """Test an on-demand pair is published without mutating the reader's snapshot."""
        extra = make_edge(BSC_ETH, BSC_USDT, 100 * E18, 300_000 * E18, 600_000)
        fetcher = FakePairFetcher(pairs=[extra])
        cache = CacheManager()
        builder = GraphBuilder(fetcher, cache, tokens, chains=chains)
        builder.set_graph(LiquidityGraph.from_edges(BSC, twc_edges))
        reader_snapshot = builder.get_graph(BSC)

        edge = await builder.fetch_on_demand(BSC, BSC_ETH, BSC_USDT)

        assert edge == extra
        assert builder.get_graph(BSC).edge_count == 3
        assert reader_snapshot.edge_count == 2
        assert cache.hot_edges(BSC) == [extra]
        assert cache.cold.get(pair_key(BSC, BSC_ETH, BSC_USDT, "pancakeswap")) == extra

    @pytest.mark.asyncio
    async def test_fetch_on_demand_missing_pair(self, builder):
        """Test a pair that does not exist returns None and changes nothing."""
        assert await builder.fetch_on_demand(BSC, TWC, BSC_ETH) is None
        assert builder.get_graph(BSC).is_empty()

    @pytest.mark.asyncio
    async def test_ensure_common_pairs(self, tokens, chains):
        """Test endpoint pairs with hubs are fetched and published."""
        fetcher = FakePairFetcher(pairs=[
            make_edge(TWC, WBNB, 50_000 * E18, 41 * E18, 50_000),
            make_edge(WBNB, BSC_ETH, 1_640 * E18, 333 * E18, 2_000_000),
        ])
        builder = GraphBuilder(fetcher, CacheManager(), tokens, chains=chains)

        count = await builder.ensure_common_pairs(BSC, [TWC, BSC_ETH])

        assert count == 2
        assert builder.get_graph(BSC).has_token(TWC)

    @pytest.mark.asyncio
    async def test_concurrent_readers_never_see_partial_graph(self, tokens, chains, twc_edges):
        """Test readers always observe a complete published snapshot."""
        pairs = [make_edge(BSC_ETH, BSC_USDT, 100 * E18, 300_000 * E18, 600_000 + i, venue=f"dex{i}") for i in range(5)]
        builder = GraphBuilder(FakePairFetcher(bulk=twc_edges + pairs), CacheManager(), tokens, chains=chains)
        seen = []

        async def reader():
            for _ in range(20):
                seen.append(builder.get_graph(BSC).edge_count)
                await asyncio.sleep(0)

        await asyncio.gather(builder.build_graph(BSC), reader())

        assert set(seen) <= {0, len(twc_edges) + len(pairs)}


class TestGraphUpdater:
    """Tests for the background refresh loop."""

    @pytest.mark.asyncio
    async def test_update_all(self):
        """Test every configured chain is rebuilt."""
        builder = AsyncMock()
        updater = GraphUpdater(builder, [1, 56], interval_seconds=300)

        await updater.update_all()

        assert builder.build_graph.await_count == 2
        assert updater.last_update is not None

    @pytest.mark.asyncio
    async def test_failed_chain_does_not_stop_others(self):
        """Test one chain failing does not block the rest."""
        builder = AsyncMock()
        builder.build_graph.side_effect = [RuntimeError("boom"), "stats"]
        updater = GraphUpdater(builder, [1, 56])

        results = await updater.update_all()

        assert results == {56: "stats"}

    @pytest.mark.asyncio
    async def test_overlapping_update_skipped(self):
        """Test an update is skipped while one is in progress."""
        builder = AsyncMock()
        updater = GraphUpdater(builder, [56])
        updater._updating = True

        assert await updater.update_all() == {}
        builder.build_graph.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_stop(self):
        """Test the loop runs in the background and stops cleanly."""
        builder = AsyncMock()
        updater = GraphUpdater(builder, [56], interval_seconds=3600)

        updater.start()
        await asyncio.sleep(0.01)
        assert updater.is_running
        await updater.stop()

        assert not updater.is_running
        builder.build_graph.assert_awaited_once_with(56)
