"""Pair discovery: bulk lists from subgraph indexers, single pairs from chain RPC."""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

import httpx

from crossroute.chains import ChainRegistry, TokenRegistry, get_chain_registry
from crossroute.errors import RoutingError
from crossroute.graph.models import PairEdge
from crossroute.prices import PriceOracle
from crossroute.routing.transformers import AmountTransformer
from crossroute.rpc import ChainRpcClient

logger = logging.getLogger(__name__)

PAIRS_QUERY = """
query Pairs($first: Int!, $skip: Int!, $minLiquidity: BigDecimal!) {
  pairs(
    first: $first
    skip: $skip
    orderBy: reserveUSD
    orderDirection: desc
    where: { reserveUSD_gt: $minLiquidity }
  ) {
    id
    token0 { id symbol decimals }
    token1 { id symbol decimals }
    reserve0
    reserve1
    reserveUSD
  }
}
"""

SUBGRAPH_PAGE_SIZE = 1000
RPC_CONCURRENCY = 10


class PairFetcher:
    """Fetches pair data from indexers and verifies it against the chain."""

    def __init__(
        self,
        rpc: ChainRpcClient,
        tokens: TokenRegistry,
        prices: Optional[PriceOracle] = None,
        chains: Optional[ChainRegistry] = None,
        thegraph_api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc = rpc
        self.tokens = tokens
        self.prices = prices
        self.chains = chains or get_chain_registry()
        self.thegraph_api_key = thegraph_api_key
        self.timeout = timeout
        self._transport = transport
        self._semaphore = asyncio.Semaphore(RPC_CONCURRENCY)

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.thegraph_api_key:
            headers["Authorization"] = f"Bearer {self.thegraph_api_key}"
        return headers

    async def fetch_bulk(
        self,
        chain_id: int,
        limit: int = 1000,
        min_liquidity_usd: float = 1000.0,
    ) -> list[PairEdge]:
        """Fetch the most liquid pairs of a chain from its subgraph.

        Returns an empty list when the chain has no indexer or the indexer fails.
        """
        chain = self.chains.get_canonical_chain(chain_id)
        if not chain.subgraph_url or not chain.dex_name:
            logger.debug(f"No indexer configured for chain {chain_id}")
            return []

        edges: list[PairEdge] = []
        skip = 0
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                while len(edges) < limit:
                    first = min(SUBGRAPH_PAGE_SIZE, limit - len(edges))
                    response = await client.post(
                        chain.subgraph_url,
                        headers=self._get_headers(),
                        json={
                            "query": PAIRS_QUERY,
                            "variables": {
                                "first": first,
                                "skip": skip,
                                "minLiquidity": str(min_liquidity_usd),
                            },
                        },
                    )
                    if response.status_code != 200:
                        logger.warning(f"Subgraph error on chain {chain_id}: HTTP {response.status_code}")
                        break

                    data = response.json()
                    if data.get("errors"):
                        logger.warning(f"Subgraph query errors on chain {chain_id}: {data['errors']}")
                        break

                    pairs = (data.get("data") or {}).get("pairs") or []
                    for pair in pairs:
                        edge = self._parse_pair(chain_id, chain.dex_name, chain.dex_fee_bps, pair)
                        if edge is not None:
                            edges.append(edge)

                    if len(pairs) < first:
                        break
                    skip += first
        except httpx.HTTPError as e:
            logger.warning(f"Subgraph unreachable for chain {chain_id}: {type(e).__name__}: {e}")

        logger.info(f"Fetched {len(edges)} pairs from indexer for chain {chain_id}")
        return edges

    def _parse_pair(self, chain_id: int, venue: str, fee_bps: int, pair: dict) -> Optional[PairEdge]:
        try:
            token0 = pair["token0"]
            token1 = pair["token1"]
            decimals0 = int(token0["decimals"])
            decimals1 = int(token1["decimals"])
            reserve0 = AmountTransformer.to_raw_int(self._plain(pair["reserve0"]), decimals0)
            reserve1 = AmountTransformer.to_raw_int(self._plain(pair["reserve1"]), decimals1)
            liquidity = float(pair.get("reserveUSD") or 0)
        except (KeyError, TypeError, ValueError, RoutingError) as e:
            logger.debug(f"Skipping malformed pair {pair.get('id')}: {e}")
            return None

        if reserve0 == 0 or reserve1 == 0:
            return None

        self.tokens.register(chain_id, token0["id"], token0.get("symbol", ""), decimals0)
        self.tokens.register(chain_id, token1["id"], token1.get("symbol", ""), decimals1)

        return PairEdge.create(
            token0=token0["id"],
            token1=token1["id"],
            reserve0=reserve0,
            reserve1=reserve1,
            chain_id=chain_id,
            venue=venue,
            pair_address=pair["id"],
            liquidity_usd=liquidity,
            fee_bps=fee_bps,
        )

    @staticmethod
    def _plain(value) -> str:
        return AmountTransformer.normalize(value)

    async def fetch_pair(self, chain_id: int, token_a: str, token_b: str) -> Optional[PairEdge]:
        """Look a single pair up through the chain's default factory.

        Failures are logged and reported as None.
        """
        chain = self.chains.get_canonical_chain(chain_id)
        if not chain.is_evm or not chain.factory_address:
            return None

        async with self._semaphore:
            try:
                pair_address = await self.rpc.get_pair_address(
                    chain_id, chain.factory_address, token_a, token_b
                )
                if pair_address is None:
                    logger.debug(f"No {chain.dex_name} pair for {token_a}/{token_b} on chain {chain_id}")
                    return None
                reserve0, reserve1, _ = await self.rpc.get_reserves(chain_id, pair_address)
                token0 = await self.rpc.get_token0(chain_id, pair_address)
            except (RoutingError, httpx.HTTPError, ValueError) as e:
                logger.warning(f"Pair fetch failed for {token_a}/{token_b} on chain {chain_id}: {e}")
                return None

        if reserve0 == 0 or reserve1 == 0:
            return None

        token1 = token_b.lower() if token0 == token_a.lower() else token_a.lower()
        liquidity = await self.estimate_liquidity_usd(chain_id, token0, token1, reserve0, reserve1)
        return PairEdge.create(
            token0=token0,
            token1=token1,
            reserve0=reserve0,
            reserve1=reserve1,
            chain_id=chain_id,
            venue=chain.dex_name,
            pair_address=pair_address,
            liquidity_usd=liquidity,
            fee_bps=chain.dex_fee_bps,
        )

    async def refresh_edge(self, edge: PairEdge) -> Optional[PairEdge]:
        """Re-read reserves and liquidity of a known pair together."""
        async with self._semaphore:
            try:
                reserve0, reserve1, _ = await self.rpc.get_reserves(edge.chain_id, edge.pair_address)
            except (RoutingError, httpx.HTTPError, ValueError) as e:
                logger.debug(f"Refresh failed for {edge.id}: {e}")
                return None
        # V2 pairs order token0 < token1, which matches the edge's sorted order
        liquidity = await self.estimate_liquidity_usd(
            edge.chain_id, edge.token_a, edge.token_b, reserve0, reserve1
        )
        if liquidity <= 0:
            liquidity = edge.liquidity_usd * self._reserve_ratio(edge, reserve0, reserve1)
        return edge.refreshed(reserve0, reserve1, liquidity)

    async def verify_pairs(self, edges: list[PairEdge]) -> list[PairEdge]:
        """Refresh a batch of edges; edges that fail verification are returned unchanged."""
        results = await asyncio.gather(*(self.refresh_edge(e) for e in edges), return_exceptions=True)
        verified = 0
        out = []
        for original, fresh in zip(edges, results):
            if isinstance(fresh, Exception):
                logger.warning(f"Verification of {original.id} failed: {type(fresh).__name__}: {fresh}")
                out.append(original)
            elif fresh is not None:
                verified += 1
                out.append(fresh)
            else:
                out.append(original)
        logger.debug(f"Verified {verified}/{len(edges)} pairs via RPC")
        return out

    async def estimate_liquidity_usd(
        self,
        chain_id: int,
        token0: str,
        token1: str,
        reserve0: int,
        reserve1: int,
    ) -> float:
        """USD value of both reserves; one priced side is doubled, no prices gives 0."""
        if self.prices is None:
            return 0.0

        values = []
        for token, reserve in ((token0, reserve0), (token1, reserve1)):
            price = await self.prices.get_price_usd(chain_id, token)
            if price is None:
                continue
            try:
                decimals = await self.tokens.get_decimals(chain_id, token)
            except RoutingError:
                continue
            values.append(Decimal(reserve) / Decimal(10**decimals) * price)

        if not values:
            return 0.0
        if len(values) == 1:
            return float(values[0] * 2)
        return float(sum(values))

    @staticmethod
    def _reserve_ratio(edge: PairEdge, reserve0: int, reserve1: int) -> float:
        if edge.reserve_a == 0:
            return 1.0
        return reserve0 / edge.reserve_a
