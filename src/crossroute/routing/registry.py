"""Registry of provider adapters and eligibility lookup."""

import logging
from typing import Optional

from crossroute.routing.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds every configured adapter and answers which ones fit a request."""

    def __init__(self, providers: Optional[list[ProviderAdapter]] = None):
        self._providers: dict[str, ProviderAdapter] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ProviderAdapter) -> None:
        if provider.name in self._providers:
            logger.warning(f"Replacing registered provider {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[ProviderAdapter]:
        return self._providers.get(name)

    @property
    def providers(self) -> list[ProviderAdapter]:
        return list(self._providers.values())

    def get_eligible(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str = "",
        to_token: str = "",
    ) -> list[ProviderAdapter]:
        """Adapters supporting both chains (and cross-chain when they differ), by priority."""
        eligible = [
            p for p in self._providers.values()
            if p.supports_pair(from_chain, from_token, to_chain, to_token)
        ]
        eligible.sort(key=lambda p: (p.get_priority(), p.name))
        return eligible
