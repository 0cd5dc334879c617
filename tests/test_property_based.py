"""Property-based tests using Hypothesis.

Tests invariants of the core algorithms: listing deduplication, quartile
ordering and price normalization.
"""

import random
from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from property_search.aggregation.stats import Stats
from property_search.models import Listing
from property_search.scrapers.parsing import normalize_price
from property_search.scrapers.rightmove import dedupe_by_id

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

finite_floats = st.floats(
    min_value=-1e9, max_value=1e9, allow_nan=False, allow_infinity=False
)

listings = st.builds(
    Listing,
    id=st.integers(min_value=1, max_value=50),
    coordinates=st.just((-0.1, 51.5)),
    price=st.floats(min_value=0, max_value=1e7, allow_nan=False),
    post_date=st.just(datetime(2024, 1, 1, tzinfo=UTC)),
)


# ---------------------------------------------------------------------------
# dedupe_by_id
# ---------------------------------------------------------------------------


class TestDedupe:
    @given(st.lists(listings, max_size=40))
    def test_ids_unique(self, items: list[Listing]) -> None:
        ids = [listing.id for listing in dedupe_by_id(items)]
        assert len(ids) == len(set(ids))
        assert set(ids) == {listing.id for listing in items}

    @given(st.lists(listings, max_size=40))
    def test_idempotent(self, items: list[Listing]) -> None:
        once = dedupe_by_id(items)
        assert dedupe_by_id(once) == once

    @given(st.lists(listings, max_size=40), st.randoms(use_true_random=False))
    def test_order_independent_ids(self, items: list[Listing], rnd: random.Random) -> None:
        shuffled = list(items)
        rnd.shuffle(shuffled)
        assert [x.id for x in dedupe_by_id(shuffled)] == [x.id for x in dedupe_by_id(items)]


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestStatsOrdering:
    @given(st.lists(finite_floats, min_size=1, max_size=60))
    def test_quartiles_ordered(self, values: list[float]) -> None:
        stats = Stats.from_values(values)
        assert stats.min <= stats.q1 <= stats.median <= stats.q3 <= stats.max
        assert stats.count == len(values)

    @given(st.lists(finite_floats, min_size=1, max_size=60))
    def test_extremes(self, values: list[float]) -> None:
        stats = Stats.from_values(values)
        assert stats.min == min(values)
        assert stats.max == max(values)


# ---------------------------------------------------------------------------
# normalize_price
# ---------------------------------------------------------------------------


class TestNormalizePrice:
    @given(st.floats(min_value=0, max_value=1e6, allow_nan=False))
    def test_weekly(self, amount: float) -> None:
        assert normalize_price(amount, "weekly") == pytest.approx(amount * 52 / 12)

    @given(st.floats(min_value=0, max_value=1e8, allow_nan=False))
    def test_yearly(self, amount: float) -> None:
        assert normalize_price(amount, "yearly") == pytest.approx(amount / 12)
