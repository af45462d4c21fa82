"""Factory for creating provider adapters and bridges.

Keyless providers are always created; providers that refuse anonymous
traffic are created only when their API key is configured.
"""

import logging
from typing import Optional

import httpx

from crossroute.bridges import BridgeAdapter, SocketBridge, StargateBridge
from crossroute.chains import TokenRegistry
from crossroute.config import Settings, get_settings
from crossroute.gas import GasEstimator
from crossroute.routing.base import ProviderAdapter
from crossroute.routing.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def create_oneinch_adapter(
    tokens: TokenRegistry,
    gas: GasEstimator,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[ProviderAdapter]:
    """Create the 1inch adapter.

    The 1inch API rejects requests without a key, so no adapter is
    created when ONEINCH_API_KEY is unset.
    """
    settings = settings or get_settings()
    if not settings.oneinch_api_key:
        logger.info("ONEINCH_API_KEY not set, 1inch adapter disabled")
        return None

    from crossroute.routing.oneinch import OneInchAdapter
    return OneInchAdapter(
        api_key=settings.oneinch_api_key,
        tokens=tokens,
        gas=gas,
        quote_ttl_seconds=settings.quote_ttl_seconds,
        timeout=settings.provider_timeout_seconds,
        transport=transport,
    )


def create_jupiter_adapter(
    tokens: TokenRegistry,
    gas: GasEstimator,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderAdapter:
    """Create the Jupiter adapter for Solana. The API key only raises rate limits."""
    settings = settings or get_settings()

    from crossroute.routing.jupiter import JupiterAdapter
    return JupiterAdapter(
        api_key=settings.jupiter_api_key or None,
        tokens=tokens,
        gas=gas,
        quote_ttl_seconds=settings.quote_ttl_seconds,
        timeout=settings.provider_timeout_seconds,
        transport=transport,
    )


def create_lifi_adapter(
    tokens: TokenRegistry,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderAdapter:
    """Create the LI.FI adapter (same-chain and cross-chain)."""
    settings = settings or get_settings()

    from crossroute.routing.lifi import LiFiAdapter
    return LiFiAdapter(
        api_key=settings.lifi_api_key or None,
        tokens=tokens,
        quote_ttl_seconds=settings.quote_ttl_seconds,
        timeout=settings.provider_timeout_seconds,
        transport=transport,
    )


def create_default_registry(
    tokens: TokenRegistry,
    gas: GasEstimator,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderRegistry:
    """Create a registry with every available provider."""
    settings = settings or get_settings()
    registry = ProviderRegistry()

    registry.register(create_lifi_adapter(tokens, settings, transport))
    registry.register(create_jupiter_adapter(tokens, gas, settings, transport))

    oneinch = create_oneinch_adapter(tokens, gas, settings, transport)
    if oneinch:
        registry.register(oneinch)

    logger.info(f"Created provider registry with {len(registry.providers)} provider(s)")
    for provider in registry.providers:
        logger.debug(f"  - {provider.name}")
    return registry


def create_default_bridges(
    tokens: TokenRegistry,
    gas: GasEstimator,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[BridgeAdapter]:
    """Create the bridges used by the cross-chain composer."""
    settings = settings or get_settings()
    bridges: list[BridgeAdapter] = [StargateBridge(gas=gas, tokens=tokens)]

    if settings.socket_api_key:
        bridges.append(
            SocketBridge(
                api_key=settings.socket_api_key,
                timeout=settings.provider_timeout_seconds,
                transport=transport,
                tokens=tokens,
            )
        )
    else:
        logger.info("SOCKET_API_KEY not set, Socket bridge disabled")

    return bridges
