"""Shared parsing helpers for listing and price-history fields."""

import re
from datetime import UTC, datetime
from typing import Final


class UnrecognizedPriceFrequencyError(ValueError):
    """A listing price carries a frequency we do not know how to convert.

    This means the upstream schema changed; prices cannot be trusted, so the
    run must stop rather than aggregate wrong numbers.
    """

    def __init__(self, frequency: str, *, listing_id: int | None = None) -> None:
        super().__init__(f"Unrecognized price frequency {frequency!r} (listing {listing_id})")
        self.frequency = frequency
        self.listing_id = listing_id


# Multipliers from a published amount to a monthly equivalent
_MONTHLY_FACTORS: Final[dict[str, float]] = {
    "weekly": 52 / 12,
    "monthly": 1.0,
    "yearly": 1 / 12,
    "not specified": 1.0,
}

_SQUARE_FEET_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*sq\.\s*ft\.", re.IGNORECASE)
_GROUPED_INTEGER_PATTERN = re.compile(r"\d{1,3}(?:,\d{3})+|\d+")


def normalize_price(amount: float, frequency: str | None, *, listing_id: int | None = None) -> float:
    """Convert a published price to its monthly equivalent.

    Weekly amounts become ``amount * 52 / 12`` and yearly ``amount / 12``.
    Monthly, "not specified" and missing frequencies (sales) are unchanged.

    Raises:
        UnrecognizedPriceFrequencyError: Any other frequency.
    """
    if frequency is None or frequency == "":
        return float(amount)
    factor = _MONTHLY_FACTORS.get(frequency.lower())
    if factor is None:
        raise UnrecognizedPriceFrequencyError(frequency, listing_id=listing_id)
    return amount * factor


def parse_square_feet(text: str | None) -> int | None:
    """Extract floor area from a display size such as ``"1,109 sq. ft."``.

    Returns:
        Whole square feet, or None when the text has no positive size.
    """
    if not text:
        return None
    match = _SQUARE_FEET_PATTERN.search(text)
    if not match:
        return None
    square_feet = int(float(match.group(1).replace(",", "")))
    return square_feet if square_feet > 0 else None


def parse_grouped_integer(text: str) -> int | None:
    """First comma-grouped integer in ``text`` (``"£1,250,000"`` -> 1250000)."""
    match = _GROUPED_INTEGER_PATTERN.search(text)
    if not match:
        return None
    return int(match.group(0).replace(",", ""))


def parse_day_month_year(text: str, *, separator: str = "/") -> datetime | None:
    """Parse ``DD/MM/YYYY`` (or another separator) as midnight UTC."""
    try:
        parsed = datetime.strptime(text.strip(), f"%d{separator}%m{separator}%Y")
    except ValueError:
        return None
    return parsed.replace(tzinfo=UTC)
