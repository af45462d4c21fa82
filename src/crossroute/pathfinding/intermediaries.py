"""Selection of intermediary tokens allowed inside multi-hop paths."""

import logging
from typing import Optional

from crossroute.chains import ChainRegistry, TokenCategory, get_chain_registry
from crossroute.graph.liquidity_graph import LiquidityGraph

logger = logging.getLogger(__name__)

CATEGORY_PRIORITY = {
    TokenCategory.NATIVE: 0,
    TokenCategory.STABLE: 1,
    TokenCategory.BLUECHIP: 2,
    TokenCategory.OTHER: 3,
}


class IntermediarySelector:
    """Restricts branching to a small set of well-connected tokens.

    Priority: native-wrapped token, stablecoins, blue-chips, then any token
    whose pair with an endpoint clears the liquidity floor.
    """

    def __init__(
        self,
        chains: Optional[ChainRegistry] = None,
        min_liquidity_usd: float = 1_000_000.0,
        max_candidates: int = 10,
    ):
        self.chains = chains or get_chain_registry()
        self.min_liquidity_usd = min_liquidity_usd
        self.max_candidates = max_candidates

    def select(self, graph: LiquidityGraph, from_token: str, to_token: str) -> list[str]:
        endpoints = {from_token.lower(), to_token.lower()}
        candidates: dict[str, tuple[int, float]] = {}

        for category in (TokenCategory.NATIVE, TokenCategory.STABLE, TokenCategory.BLUECHIP):
            for node in graph.get_nodes_by_category(category):
                if node.address not in endpoints:
                    candidates[node.address] = (CATEGORY_PRIORITY[category], -node.liquidity_usd)

        for endpoint in endpoints:
            for edge in graph.get_neighbors(endpoint, self.min_liquidity_usd):
                other = edge.other(endpoint)
                if other in endpoints or other in candidates:
                    continue
                candidates[other] = (CATEGORY_PRIORITY[TokenCategory.OTHER], -edge.liquidity_usd)

        ranked = sorted(candidates.items(), key=lambda item: (item[1], item[0]))
        selected = [address for address, _ in ranked[: self.max_candidates]]
        logger.debug(f"Selected {len(selected)} intermediaries for {from_token}->{to_token}")
        return selected
