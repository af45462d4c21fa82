"""Route scoring and selection.

Deliberately simple: a weighted sum of output amount, total fee and
estimated time. Replace ``score_route`` to change the ranking; callers
only depend on ``select_best``.
"""

from dataclasses import dataclass
from typing import Optional

from crossroute.routing.base import RouteOrder, RouterRoute

MAX_ALTERNATIVES = 3


@dataclass(frozen=True)
class ScoringWeights:
    output: float = 1000.0
    fee: float = 10.0
    time: float = 0.1

    @classmethod
    def from_settings(cls, settings) -> "ScoringWeights":
        return cls(
            output=settings.score_output_weight,
            fee=settings.score_fee_weight,
            time=settings.score_time_weight,
        )


DEFAULT_WEIGHTS = ScoringWeights()


def score_route(route: RouterRoute, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    """Higher is better."""
    return (
        float(route.output_amount) * weights.output
        - float(route.fees.total_usd) * weights.fee
        - route.estimated_time * weights.time
    )


def _sort_key(route: RouterRoute, order: RouteOrder, weights: ScoringWeights) -> tuple:
    score = round(score_route(route, weights), 9)
    if order == RouteOrder.FASTEST:
        return (route.estimated_time, -score, route.hop_count, route.route_id)
    if order == RouteOrder.CHEAPEST:
        return (route.fees.total_usd, -score, route.hop_count, route.route_id)
    # ties: fewer hops, then faster, then a stable id so input order never matters
    return (-score, route.hop_count, route.estimated_time, route.route_id)


def rank_routes(
    candidates: list[RouterRoute],
    order: RouteOrder = RouteOrder.RECOMMENDED,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[RouterRoute]:
    return sorted(candidates, key=lambda r: _sort_key(r, order, weights))


def select_best(
    candidates: list[RouterRoute],
    order: RouteOrder = RouteOrder.RECOMMENDED,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    max_alternatives: int = MAX_ALTERNATIVES,
) -> tuple[Optional[RouterRoute], list[RouterRoute]]:
    """Return ``(best, alternatives)``; ``best`` is None for an empty candidate list."""
    if not candidates:
        return None, []
    ranked = rank_routes(candidates, order, weights)
    return ranked[0], ranked[1 : 1 + max_alternatives]
