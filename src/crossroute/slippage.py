"""Automatic slippage resolution.

A bounded retry loop: the first attempt uses a tolerance picked from the
pair's liquidity tier, every further attempt doubles it up to a hard
ceiling. All successful attempts are compared and the best output wins.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Union

from crossroute.errors import RoutingError, SlippageExhausted
from crossroute.routing.base import RouterRoute

logger = logging.getLogger(__name__)

# (liquidity ceiling in USD, initial slippage in percent)
LIQUIDITY_TIERS = [
    (10_000, 10.0),
    (50_000, 5.0),
    (100_000, 3.0),
    (500_000, 1.5),
    (1_000_000, 1.0),
]
DEEP_LIQUIDITY_SLIPPAGE = 0.5
UNKNOWN_LIQUIDITY_SLIPPAGE = 0.5

# outputs closer than this are treated as equal and the lower slippage wins
OUTPUT_TOLERANCE = Decimal("0.001")

QuoteFn = Callable[[float], Awaitable[Optional[RouterRoute]]]


def initial_slippage_for_liquidity(liquidity_usd: Optional[float]) -> float:
    """Starting tolerance in percent for a pair with the given liquidity."""
    if liquidity_usd is None or liquidity_usd <= 0:
        return UNKNOWN_LIQUIDITY_SLIPPAGE
    for ceiling, slippage in LIQUIDITY_TIERS:
        if liquidity_usd <= ceiling:
            return slippage
    return DEEP_LIQUIDITY_SLIPPAGE


@dataclass
class SlippageAttempt:
    slippage: float
    route: Optional[RouterRoute] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.route is not None


@dataclass
class Resolved:
    route: RouterRoute
    applied_slippage: float
    attempts: list[SlippageAttempt] = field(default_factory=list)


@dataclass
class Exhausted:
    last_error: str
    attempts: list[SlippageAttempt] = field(default_factory=list)
    error: Optional[RoutingError] = None

    @property
    def attempted(self) -> list[float]:
        return [a.slippage for a in self.attempts]

    def to_error(self) -> RoutingError:
        """The last attempt's failure, or SlippageExhausted when attempts only came back empty.

        Either way the details carry the attempted tolerances.
        """
        if self.error is not None:
            self.error.details = {**self.error.details, "attempted_slippage": self.attempted}
            return self.error
        return SlippageExhausted(
            f"No executable route after {len(self.attempts)} slippage attempts: {self.last_error}",
            self.attempted,
        )


class AutoSlippageResolver:
    """Finds the tolerance that yields the best executable quote."""

    def __init__(self, max_attempts: int = 3, ceiling: float = 30.5):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.ceiling = ceiling

    @classmethod
    def from_settings(cls, settings) -> "AutoSlippageResolver":
        return cls(max_attempts=settings.auto_slippage_max_attempts, ceiling=settings.max_auto_slippage)

    def schedule(self, initial: float) -> list[float]:
        """Tolerances to try, non-decreasing and capped at the ceiling."""
        slippages = []
        current = min(initial, self.ceiling)
        for _ in range(self.max_attempts):
            slippages.append(current)
            if current >= self.ceiling:
                break
            current = min(current * 2, self.ceiling)
        return slippages

    async def resolve(
        self,
        quote_fn: QuoteFn,
        liquidity_usd: Optional[float] = None,
        initial_slippage: Optional[float] = None,
    ) -> Union[Resolved, Exhausted]:
        """Run the attempts and return ``Resolved`` or ``Exhausted``.

        ``quote_fn(slippage)`` returns a route, None, or raises RoutingError.
        """
        initial = initial_slippage if initial_slippage is not None else initial_slippage_for_liquidity(liquidity_usd)
        attempts: list[SlippageAttempt] = []
        last_error = "no route"
        error: Optional[RoutingError] = None

        for slippage in self.schedule(initial):
            try:
                route = await quote_fn(slippage)
            except RoutingError as e:
                last_error = e.message
                error = e
                attempts.append(SlippageAttempt(slippage, error=e.message))
                logger.debug(f"Auto slippage attempt at {slippage}% failed: {e.message}")
                continue
            if route is None:
                attempts.append(SlippageAttempt(slippage, error="no route"))
                logger.debug(f"Auto slippage attempt at {slippage}% returned no route")
                continue
            attempts.append(SlippageAttempt(slippage, route=route))

        best = self._pick_best([a for a in attempts if a.succeeded])
        if best is None:
            logger.info(f"Auto slippage exhausted after {len(attempts)} attempts: {last_error}")
            return Exhausted(last_error=last_error, attempts=attempts, error=error)

        logger.info(f"Auto slippage resolved at {best.slippage}% after {len(attempts)} attempts")
        return Resolved(route=best.route.with_slippage(best.slippage), applied_slippage=best.slippage, attempts=attempts)

    @staticmethod
    def _pick_best(successes: list[SlippageAttempt]) -> Optional[SlippageAttempt]:
        best = None
        for attempt in successes:
            if best is None:
                best = attempt
                continue
            best_out = best.route.output_amount
            out = attempt.route.output_amount
            if best_out > 0 and abs(out - best_out) / best_out <= OUTPUT_TOLERANCE:
                if attempt.slippage < best.slippage:
                    best = attempt
            elif out > best_out:
                best = attempt
        return best
