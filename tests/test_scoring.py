"""Tests for route scoring and selection."""

import itertools

from crossroute.routing.base import RouteOrder
from crossroute.scoring import ScoringWeights, rank_routes, score_route, select_best

from factories import make_route


class TestScoreRoute:
    """Tests for score_route."""

    def test_more_output_scores_higher(self):
        """Test output dominates the score."""
        assert score_route(make_route("a", "101")) > score_route(make_route("b", "100"))

    def test_fees_and_time_penalized(self):
        """Test fees and time reduce the score."""
        base = make_route("a", "100")
        costly = make_route("b", "100", fee_usd="5")
        slow = make_route("c", "100", estimated_time=600)
        assert score_route(base) > score_route(costly)
        assert score_route(base) > score_route(slow)

    def test_custom_weights(self):
        """Test weights change the ranking."""
        cheap_slow = make_route("a", "100", fee_usd="0", estimated_time=60)
        fast_costly = make_route("b", "100", fee_usd="1", estimated_time=10)
        time_heavy = ScoringWeights(output=1000, fee=1, time=10)

        assert score_route(cheap_slow) > score_route(fast_costly)
        assert score_route(fast_costly, time_heavy) > score_route(cheap_slow, time_heavy)


class TestSelectBest:
    """Tests for select_best."""

    def test_empty(self):
        """Test no candidates selects nothing."""
        assert select_best([]) == (None, [])

    def test_best_and_alternatives(self):
        """Test the best route is separated from up to three alternatives."""
        routes = [make_route(f"p{i}", str(100 + i)) for i in range(6)]
        best, alternatives = select_best(routes)

        assert best.provider == "p5"
        assert [r.provider for r in alternatives] == ["p4", "p3", "p2"]

    def test_independent_of_input_order(self):
        """Test every permutation of the candidates selects the same route."""
        routes = [
            make_route("oneinch", "100", fee_usd="1"),
            make_route("lifi", "100", fee_usd="1", route_id="lifi-b"),
            make_route("graph", "99.99", estimated_time=3),
            make_route("jupiter", "100", fee_usd="1", hops=2),
        ]
        chosen = {select_best(list(p))[0].route_id for p in itertools.permutations(routes)}
        assert len(chosen) == 1

    def test_tie_prefers_fewer_hops(self):
        """Test equal scores fall back to the hop count."""
        one_hop = make_route("a", "100", route_id="z-one")
        two_hops = make_route("b", "100", route_id="a-two", hops=2)
        best, _ = select_best([two_hops, one_hop])
        assert best is one_hop

    def test_tie_on_everything_uses_route_id(self):
        """Test a full tie is broken by route id."""
        first = make_route("a", "100", route_id="route-a")
        second = make_route("b", "100", route_id="route-b")
        assert select_best([second, first])[0] is first

    def test_fastest_order(self):
        """Test FASTEST ranks by estimated time."""
        quick = make_route("a", "90", estimated_time=5)
        slow = make_route("b", "100", estimated_time=300)
        assert select_best([slow, quick], RouteOrder.FASTEST)[0] is quick

    def test_cheapest_order(self):
        """Test CHEAPEST ranks by total fee."""
        cheap = make_route("a", "90", fee_usd="0.1")
        costly = make_route("b", "100", fee_usd="4")
        assert select_best([costly, cheap], RouteOrder.CHEAPEST)[0] is cheap

    def test_rank_routes_recommended(self):
        """Test the default order puts the highest score first."""
        ranked = rank_routes([make_route("a", "1"), make_route("b", "3"), make_route("c", "2")])
        assert [r.provider for r in ranked] == ["b", "c", "a"]
