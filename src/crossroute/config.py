"""Routing configuration using pydantic-settings.

Every tunable of the route discovery pipeline (deadlines, cache tiers,
pathfinding bounds, scoring weights, provider keys) lives here.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Routing settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Request handling
    # ======================
    request_deadline_seconds: float = Field(
        default=9.0, description="Shared deadline for one route request fan-out"
    )
    provider_timeout_seconds: float = Field(
        default=8.0, description="HTTP timeout for a single provider call"
    )
    quote_ttl_seconds: int = Field(default=60, description="Route validity period")
    default_slippage: float = Field(default=0.5, description="Default slippage tolerance in percent")
    max_price_impact_percent: float = Field(
        default=15.0, description="Price impact above which a route is rejected"
    )
    max_hops: int = Field(default=3, description="Maximum swap hops on one chain")

    # ======================
    # Auto slippage
    # ======================
    auto_slippage_max_attempts: int = Field(default=3, description="Attempt cap for auto slippage")
    max_auto_slippage: float = Field(default=30.5, description="Hard ceiling for auto slippage")
    guaranteed_route_fallback: bool = Field(
        default=False,
        description="Retry at the auto-slippage ceiling before reporting no route",
    )

    # ======================
    # Liquidity graph
    # ======================
    graph_chains: list[int] = Field(
        default=[1, 56, 137, 42161, 10, 8453], description="Chains kept in the background graph"
    )
    graph_refresh_interval_seconds: int = Field(
        default=300, description="Background graph refresh interval"
    )
    bulk_fetch_limit: int = Field(default=1000, description="Pairs per bulk indexer fetch")
    bulk_min_liquidity_usd: float = Field(
        default=1000.0, description="Liquidity floor for bulk-fetched pairs"
    )
    rpc_verify_count: int = Field(default=100, description="Top pairs re-verified via RPC")
    rpc_verify_min_liquidity_usd: float = Field(
        default=100_000.0, description="Liquidity floor for RPC verification"
    )
    max_pair_age_seconds: int = Field(
        default=3600, description="Edges older than this are pruned on rebuild"
    )

    # ======================
    # Cache tiers
    # ======================
    hot_cache_ttl_seconds: int = Field(default=300, description="Hot tier TTL")
    hot_cache_max_entries: int = Field(default=10_000, description="Hot tier size cap")
    hot_min_liquidity_usd: float = Field(default=1_000_000.0, description="Hot tier liquidity floor")
    warm_cache_ttl_seconds: int = Field(default=900, description="Warm tier TTL")
    warm_min_liquidity_usd: float = Field(default=100_000.0, description="Warm tier liquidity floor")
    cold_cache_ttl_seconds: int = Field(default=60, description="Cold tier TTL")
    redis_url: Optional[str] = Field(default=None, description="Redis URL for the warm tier")

    # ======================
    # Pathfinding
    # ======================
    intermediary_min_liquidity_usd: float = Field(
        default=1_000_000.0, description="Liquidity floor for generic intermediaries"
    )
    max_intermediaries: int = Field(default=10, description="Intermediary candidate cap")
    bfs_node_limit: int = Field(default=1000, description="Graphs below this size use BFS")
    dijkstra_node_limit: int = Field(default=10_000, description="Graphs above this size use A*")
    max_bfs_paths: int = Field(default=50, description="Path enumeration cap for BFS")
    max_graph_routes: int = Field(default=5, description="Graph candidates returned per request")
    gas_per_hop: int = Field(default=150_000, description="Gas units assumed per swap hop")

    # ======================
    # Scoring
    # ======================
    score_output_weight: float = Field(default=1000.0, description="Weight of output amount")
    score_fee_weight: float = Field(default=10.0, description="Weight of total fee in USD")
    score_time_weight: float = Field(default=0.1, description="Weight of estimated seconds")

    # ======================
    # Provider API keys
    # ======================
    oneinch_api_key: str = Field(default="", description="1inch developer portal key")
    jupiter_api_key: str = Field(default="", description="Jupiter API key")
    lifi_api_key: str = Field(default="", description="LI.FI API key")
    socket_api_key: str = Field(default="", description="Socket (Bungee) API key")
    coingecko_api_key: str = Field(default="", description="CoinGecko API key")
    thegraph_api_key: str = Field(default="", description="The Graph gateway key")

    # ======================
    # Chain RPC Endpoints
    # ======================
    eth_rpc_url: str = Field(default="https://eth.llamarpc.com", description="Ethereum RPC URL")
    bsc_rpc_url: str = Field(default="https://bsc-dataseed.binance.org", description="BSC RPC URL")
    polygon_rpc_url: str = Field(default="https://polygon-rpc.com", description="Polygon RPC URL")
    arbitrum_rpc_url: str = Field(
        default="https://arb1.arbitrum.io/rpc", description="Arbitrum RPC URL"
    )
    optimism_rpc_url: str = Field(
        default="https://mainnet.optimism.io", description="Optimism RPC URL"
    )
    base_rpc_url: str = Field(default="https://mainnet.base.org", description="Base RPC URL")
    avax_rpc_url: str = Field(
        default="https://api.avax.network/ext/bc/C/rpc", description="Avalanche RPC URL"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_rpc_url(self, chain_id: int) -> str:
        """Get RPC URL for an EVM chain id."""
        rpc_map = {
            1: self.eth_rpc_url,
            56: self.bsc_rpc_url,
            137: self.polygon_rpc_url,
            42161: self.arbitrum_rpc_url,
            10: self.optimism_rpc_url,
            8453: self.base_rpc_url,
            43114: self.avax_rpc_url,
        }
        return rpc_map.get(chain_id, "")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
