"""Tests for automatic slippage resolution."""

import pytest

from crossroute.errors import InsufficientLiquidity, SlippageExhausted
from crossroute.slippage import (
    AutoSlippageResolver,
    Exhausted,
    Resolved,
    initial_slippage_for_liquidity,
)

from factories import make_route


class ScriptedQuotes:
    """quote_fn answering from a slippage -> result table."""

    def __init__(self, results: dict):
        self.results = results
        self.calls: list[float] = []

    async def __call__(self, slippage: float):
        self.calls.append(slippage)
        result = self.results.get(slippage)
        if isinstance(result, Exception):
            raise result
        return result


class TestLiquidityTiers:
    """Tests for initial_slippage_for_liquidity."""

    @pytest.mark.parametrize(
        "liquidity,expected",
        [
            (5_000, 10.0),
            (10_000, 10.0),
            (50_000, 5.0),
            (80_000, 3.0),
            (400_000, 1.5),
            (1_000_000, 1.0),
            (25_000_000, 0.5),
            (None, 0.5),
            (0, 0.5),
        ],
    )
    def test_tiers(self, liquidity, expected):
        """Test thinner pools start with a wider tolerance."""
        assert initial_slippage_for_liquidity(liquidity) == expected


class TestSchedule:
    """Tests for AutoSlippageResolver.schedule."""

    def test_doubles(self):
        """Test tolerances double between attempts."""
        assert AutoSlippageResolver(max_attempts=3).schedule(5.0) == [5.0, 10.0, 20.0]

    def test_capped_at_ceiling(self):
        """Test the schedule never passes the ceiling and stops there."""
        schedule = AutoSlippageResolver(max_attempts=5, ceiling=30.5).schedule(10.0)
        assert schedule == [10.0, 20.0, 30.5]

    def test_monotonic_and_bounded(self):
        """Test every schedule is non-decreasing and no longer than max_attempts."""
        resolver = AutoSlippageResolver(max_attempts=4, ceiling=30.5)
        for initial in (0.1, 0.5, 3.0, 29.0, 30.5, 45.0):
            schedule = resolver.schedule(initial)
            assert 1 <= len(schedule) <= 4
            assert schedule == sorted(schedule)
            assert all(s <= 30.5 for s in schedule)

    def test_requires_an_attempt(self):
        """Test zero attempts is rejected."""
        with pytest.raises(ValueError):
            AutoSlippageResolver(max_attempts=0)


class TestResolve:
    """Tests for AutoSlippageResolver.resolve."""

    @pytest.mark.asyncio
    async def test_retry_after_failure(self):
        """Test a $50k pool starts at 5% and succeeds on the 10% retry."""
        quotes = ScriptedQuotes({
            5.0: InsufficientLiquidity(6.2),
            10.0: make_route("graph", "100"),
            20.0: None,
        })
        result = await AutoSlippageResolver(max_attempts=3).resolve(quotes, liquidity_usd=50_000)

        assert isinstance(result, Resolved)
        assert result.applied_slippage == 10.0
        assert result.route.slippage == 10.0
        assert quotes.calls == [5.0, 10.0, 20.0]
        assert [a.succeeded for a in result.attempts] == [False, True, False]

    @pytest.mark.asyncio
    async def test_best_output_wins(self):
        """Test a clearly better output at a higher tolerance is chosen."""
        quotes = ScriptedQuotes({
            1.0: make_route("graph", "100"),
            2.0: make_route("graph", "105"),
            4.0: make_route("graph", "101"),
        })
        result = await AutoSlippageResolver().resolve(quotes, initial_slippage=1.0)
        assert result.applied_slippage == 2.0
        assert result.route.output_amount == 105

    @pytest.mark.asyncio
    async def test_near_tie_prefers_lower_slippage(self):
        """Test outputs within tolerance keep the tighter slippage."""
        quotes = ScriptedQuotes({
            1.0: make_route("graph", "100"),
            2.0: make_route("graph", "100.05"),
            4.0: make_route("graph", "100.09"),
        })
        result = await AutoSlippageResolver().resolve(quotes, initial_slippage=1.0)
        assert result.applied_slippage == 1.0

    @pytest.mark.asyncio
    async def test_exhausted(self):
        """Test every attempt failing reports the attempted tolerances."""
        quotes = ScriptedQuotes({})
        result = await AutoSlippageResolver(max_attempts=3).resolve(quotes, liquidity_usd=5_000)

        assert isinstance(result, Exhausted)
        assert quotes.calls == [10.0, 20.0, 30.5]
        error = result.to_error()
        assert isinstance(error, SlippageExhausted)
        assert error.attempted == [10.0, 20.0, 30.5]
        assert error.code == "SLIPPAGE_EXHAUSTED"

    @pytest.mark.asyncio
    async def test_exhausted_keeps_last_failure(self):
        """Test a failing quote surfaces its own error with the attempted tolerances."""
        quotes = ScriptedQuotes({
            1.0: InsufficientLiquidity(30.0),
            2.0: None,
            4.0: InsufficientLiquidity(28.5),
        })
        result = await AutoSlippageResolver(max_attempts=3).resolve(quotes, initial_slippage=1.0)

        assert isinstance(result, Exhausted)
        error = result.to_error()
        assert isinstance(error, InsufficientLiquidity)
        assert error.code == "INSUFFICIENT_LIQUIDITY"
        assert error.details == {"price_impact": 28.5, "attempted_slippage": [1.0, 2.0, 4.0]}

    @pytest.mark.asyncio
    async def test_never_exceeds_ceiling(self):
        """Test the resolver never quotes above the ceiling."""
        quotes = ScriptedQuotes({})
        await AutoSlippageResolver(max_attempts=10, ceiling=30.5).resolve(quotes, initial_slippage=0.5)

        assert max(quotes.calls) == 30.5
        assert quotes.calls == sorted(quotes.calls)
