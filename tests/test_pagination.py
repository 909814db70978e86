"""
Tests for per-page normalization, page resolution and slice bounds.
"""

import pytest

from localnode_engine.app.application.services.pagination import (
    DEFAULT_PER_PAGE,
    MAX_PER_PAGE,
    compute_skip,
    normalize_per_page,
    page_count,
    page_size,
    resolve_page,
)
from localnode_engine.app.domain.errors import PageOutOfRangeError


class TestNormalizePerPage:
    def test_absent_uses_default(self):
        assert normalize_per_page(None) == DEFAULT_PER_PAGE == 30

    @pytest.mark.parametrize("requested", [0, -5])
    def test_below_one_falls_back_to_default_not_one(self, requested):
        assert normalize_per_page(requested) == 30

    def test_above_max_clamps_to_max_not_default(self):
        assert normalize_per_page(500) == MAX_PER_PAGE == 100
        assert normalize_per_page(101) == 100

    @pytest.mark.parametrize("requested", [1, 42, 100])
    def test_in_range_passes_through(self, requested):
        assert normalize_per_page(requested) == requested


class TestResolvePage:
    def test_absent_page_is_one_even_for_empty_results(self):
        assert resolve_page(None, 30, 0) == 1

    def test_page_one_is_valid_for_empty_results(self):
        assert resolve_page(1, 30, 0) == 1

    def test_last_page_is_valid(self):
        assert resolve_page(3, 3, 7) == 3

    def test_page_past_the_end_is_out_of_range(self):
        with pytest.raises(PageOutOfRangeError) as exc_info:
            resolve_page(4, 3, 7)
        assert exc_info.value.page_count == 3
        assert exc_info.value.recovery_page == 1
        assert "[1, 3]" in str(exc_info.value)

    @pytest.mark.parametrize("requested", [0, -1])
    def test_non_positive_page_is_out_of_range(self, requested):
        with pytest.raises(PageOutOfRangeError):
            resolve_page(requested, 30, 100)

    def test_non_positive_per_page_is_a_programming_error(self):
        with pytest.raises(ValueError):
            resolve_page(1, 0, 10)

    def test_page_count(self):
        assert page_count(0, 30) == 1
        assert page_count(30, 30) == 1
        assert page_count(31, 30) == 2
        assert page_count(7, 3) == 3


class TestSkipAndSize:
    @pytest.mark.parametrize(
        "page,per_page",
        [(1, 1), (1, 30), (2, 3), (10, 100), (7, 42)],
    )
    def test_skip_is_offset_of_page(self, page, per_page):
        skip = compute_skip(page, per_page)
        assert skip == (page - 1) * per_page
        assert skip >= 0

    def test_skip_never_negative(self):
        assert compute_skip(0, 30) == 0

    def test_page_size_full_page(self):
        assert page_size(7, 3, 3) == 3

    def test_page_size_partial_last_page(self):
        assert page_size(7, 6, 3) == 1

    def test_page_size_never_negative(self):
        assert page_size(0, 30, 30) == 0
