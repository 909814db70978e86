"""
Tests for ordering of tx search hits.
"""

import pytest

from conftest import make_hit
from localnode_engine.app.application.services.search_sort import sort_search_hits
from localnode_engine.app.domain.errors import InvalidOrderByError


def _coords(hits):
    return [(h.height, h.index) for h in hits]


class TestSortSearchHits:
    def test_ascending(self, scenario_hits):
        result = sort_search_hits(scenario_hits, "asc")
        assert _coords(result) == [(1, 0), (1, 1), (2, 0), (3, 0), (3, 1), (3, 2), (5, 0)]

    def test_empty_order_is_ascending(self, scenario_hits):
        assert _coords(sort_search_hits(scenario_hits, "")) == _coords(
            sort_search_hits(scenario_hits, "asc")
        )

    def test_descending_breaks_ties_by_descending_index(self, scenario_hits):
        result = sort_search_hits(scenario_hits, "desc")
        assert _coords(result) == [(5, 0), (3, 2), (3, 1), (3, 0), (2, 0), (1, 1), (1, 0)]

    @pytest.mark.parametrize("order_by", ["asc", "desc", ""])
    def test_sorting_is_idempotent(self, scenario_hits, order_by):
        once = sort_search_hits(scenario_hits, order_by)
        twice = sort_search_hits(once, order_by)
        assert twice == once

    def test_input_is_not_mutated(self, scenario_hits):
        before = list(scenario_hits)
        sort_search_hits(scenario_hits, "desc")
        assert scenario_hits == before

    @pytest.mark.parametrize("order_by", ["bogus", "ASC", "Desc", " asc"])
    def test_unknown_order_is_rejected(self, scenario_hits, order_by):
        with pytest.raises(InvalidOrderByError):
            sort_search_hits(scenario_hits, order_by)

    def test_unknown_order_is_rejected_for_empty_input(self):
        with pytest.raises(InvalidOrderByError):
            sort_search_hits([], "bogus")

    def test_single_hit(self):
        hit = make_hit(4, 0)
        assert sort_search_hits([hit], "desc") == [hit]
