"""Turn one search's listings into per-metric distributions."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from property_search.aggregation.stats import Stats
from property_search.models import Listing, PriceHistory, PropertyStats

DAYS_PER_MONTH = 30


def one_month_pct_change(history: PriceHistory | None) -> float:
    """Latest price change scaled to a 30-day month.

    Uses the last two records by date. Fewer than two records or an unchanged
    price give 0. A 1000 -> 900 drop over 30 days gives -0.10.
    """
    if history is None or len(history.records) < 2:
        return 0.0
    first, second = sorted(history.records, key=lambda r: r.date)[-2:]
    if first.price == second.price or first.price == 0:
        return 0.0
    pct_change = (second.price - first.price) / first.price
    days_between = max((second.date - first.date).days, 1)
    return pct_change * DAYS_PER_MONTH / days_between


def calculate_stats(
    listings: Sequence[Listing],
    histories: Iterable[PriceHistory] | None = None,
    *,
    now: datetime | None = None,
) -> PropertyStats:
    """Summarise the listings of one search.

    Args:
        listings: Deduplicated listings of one location/action/bedroom search.
        histories: Price histories keyed by listing id, or None when price
            history is not collected (the month-over-month metric is then empty).
        now: Reference time for listed days (defaults to the current time).
    """
    now = now or datetime.now(UTC)

    transacted_fraction = (
        sum(1 for listing in listings if listing.transacted) / len(listings) if listings else 0.0
    )

    if histories is None:
        pct_change = Stats.empty()
    else:
        by_id = {history.id: history for history in histories}
        pct_change = Stats.from_values(
            one_month_pct_change(by_id.get(listing.id)) for listing in listings
        )

    return PropertyStats(
        price=Stats.from_values(listing.price for listing in listings),
        listed_days=Stats.from_values((now - listing.post_date).days for listing in listings),
        percent_transacted=Stats.from_values(transacted_fraction for _ in listings),
        square_feet=Stats.from_values(
            listing.square_feet for listing in listings if listing.square_feet is not None
        ),
        one_month_pct_change=pct_change,
    )
