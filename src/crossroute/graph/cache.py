"""Tiered pair cache.

- hot: in-process, short TTL, high-liquidity and on-demand pairs
- warm: shared cache (Redis when configured), medium TTL, medium-liquidity pairs
- cold: in-process, brief TTL, results of on-demand fetches

Entries leave only by TTL expiry. A pair found in a colder tier is promoted
only after it has been refreshed.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from crossroute.graph.models import PairEdge

logger = logging.getLogger(__name__)

Refresher = Callable[[PairEdge], Awaitable[Optional[PairEdge]]]


class TTLCache:
    """In-process TTL store with a size cap that evicts the oldest 10%."""

    def __init__(self, ttl_seconds: float, max_entries: Optional[int] = None):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        stored_at, value = self._store.get(key, (0.0, None))
        if value is None:
            return None
        if time.time() - stored_at > self.ttl_seconds:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if self.max_entries and key not in self._store and len(self._store) >= self.max_entries:
            self._evict_oldest()
        self._store[key] = (time.time(), value)

    def values(self) -> list[Any]:
        now = time.time()
        return [v for ts, v in self._store.values() if now - ts <= self.ttl_seconds]

    def purge_expired(self) -> int:
        now = time.time()
        expired = [k for k, (ts, _) in self._store.items() if now - ts > self.ttl_seconds]
        for key in expired:
            del self._store[key]
        return len(expired)

    def _evict_oldest(self) -> None:
        self.purge_expired()
        if self.max_entries and len(self._store) >= self.max_entries:
            count = max(1, len(self._store) // 10)
            oldest = sorted(self._store.items(), key=lambda item: item[1][0])[:count]
            for key, _ in oldest:
                del self._store[key]

    def __len__(self) -> int:
        return len(self._store)


class SharedCache(ABC):
    """Interface of the warm tier backend."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass

    async def close(self) -> None:
        pass


class MemorySharedCache(SharedCache):
    """Process-local warm tier, used when no Redis URL is configured."""

    def __init__(self):
        self._store: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        expires, value = self._store.get(key, (0.0, None))
        if value is not None and expires > time.time():
            return value
        self._store.pop(key, None)
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (time.time() + ttl_seconds, value)


class RedisSharedCache(SharedCache):
    """Warm tier backed by Redis."""

    def __init__(self, url: str, prefix: str = "crossroute:"):
        self.prefix = prefix
        self._client = aioredis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self.prefix + key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.setex(self.prefix + key, ttl_seconds, value)

    async def close(self) -> None:
        await self._client.aclose()


def pair_key(chain_id: int, token_a: str, token_b: str, venue: str) -> str:
    a, b = sorted((token_a.lower(), token_b.lower()))
    return f"pair:{chain_id}:{venue}:{a}:{b}"


def edge_key(edge: PairEdge) -> str:
    return pair_key(edge.chain_id, edge.token_a, edge.token_b, edge.venue)


class CacheManager:
    """Routes pair edges to cache tiers and serves tiered lookups."""

    def __init__(
        self,
        hot_ttl_seconds: int = 300,
        hot_max_entries: int = 10_000,
        hot_min_liquidity_usd: float = 1_000_000.0,
        warm_ttl_seconds: int = 900,
        warm_min_liquidity_usd: float = 100_000.0,
        cold_ttl_seconds: int = 60,
        warm: Optional[SharedCache] = None,
    ):
        self.hot = TTLCache(hot_ttl_seconds, hot_max_entries)
        self.cold = TTLCache(cold_ttl_seconds)
        self.warm = warm or MemorySharedCache()
        self.warm_ttl_seconds = warm_ttl_seconds
        self.hot_min_liquidity_usd = hot_min_liquidity_usd
        self.warm_min_liquidity_usd = warm_min_liquidity_usd
        self._hot_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "CacheManager":
        warm = RedisSharedCache(settings.redis_url) if settings.redis_url else None
        return cls(
            hot_ttl_seconds=settings.hot_cache_ttl_seconds,
            hot_max_entries=settings.hot_cache_max_entries,
            hot_min_liquidity_usd=settings.hot_min_liquidity_usd,
            warm_ttl_seconds=settings.warm_cache_ttl_seconds,
            warm_min_liquidity_usd=settings.warm_min_liquidity_usd,
            cold_ttl_seconds=settings.cold_cache_ttl_seconds,
            warm=warm,
        )

    async def insert_hot(self, edge: PairEdge) -> None:
        """Insert into the hot tier. The lock covers only the insert."""
        async with self._hot_lock:
            self.hot.set(edge_key(edge), edge)

    async def store_warm(self, edge: PairEdge) -> None:
        key = edge_key(edge)
        await self.warm.set(key, json.dumps(edge.to_dict()), self.warm_ttl_seconds)

    def store_cold(self, edge: PairEdge) -> None:
        self.cold.set(edge_key(edge), edge)

    async def store_bulk(self, edges: list[PairEdge]) -> dict:
        """Place bulk-fetched edges into the tier matching their liquidity."""
        counts = {"hot": 0, "warm": 0, "skipped": 0}
        for edge in edges:
            if edge.liquidity_usd >= self.hot_min_liquidity_usd:
                await self.insert_hot(edge)
                counts["hot"] += 1
            elif edge.liquidity_usd >= self.warm_min_liquidity_usd:
                try:
                    await self.store_warm(edge)
                    counts["warm"] += 1
                except (RedisError, OSError) as e:
                    logger.warning(f"Warm cache write failed for {edge.id}: {e}")
                    counts["skipped"] += 1
            else:
                counts["skipped"] += 1
        return counts

    def hot_edges(self, chain_id: int) -> list[PairEdge]:
        return [e for e in self.hot.values() if e.chain_id == chain_id]

    async def get_pair(
        self,
        chain_id: int,
        token_a: str,
        token_b: str,
        venue: str,
        refresh: Optional[Refresher] = None,
    ) -> Optional[PairEdge]:
        """Look a venue's pair up hot -> warm -> cold.

        A warm or cold hit is promoted only when ``refresh`` returns fresh
        data; otherwise the cached edge is returned as-is without promotion.
        """
        key = pair_key(chain_id, token_a, token_b, venue)

        edge = self.hot.get(key)
        if edge is not None:
            return edge

        edge = None
        try:
            raw = await self.warm.get(key)
            if raw:
                edge = PairEdge.from_dict(json.loads(raw))
        except (RedisError, OSError, ValueError) as e:
            logger.warning(f"Warm cache read failed for {key}: {e}")

        if edge is None:
            edge = self.cold.get(key)
        if edge is None:
            return None

        if refresh is None:
            return edge

        fresh = await refresh(edge)
        if fresh is None:
            return edge

        await self._promote(fresh)
        return fresh

    async def _promote(self, edge: PairEdge) -> None:
        if edge.liquidity_usd >= self.hot_min_liquidity_usd:
            await self.insert_hot(edge)
        else:
            try:
                await self.store_warm(edge)
            except (RedisError, OSError) as e:
                logger.warning(f"Warm cache promotion failed for {edge.id}: {e}")

    def stats(self) -> dict:
        return {"hot": len(self.hot), "cold": len(self.cold)}

    async def close(self) -> None:
        await self.warm.close()
