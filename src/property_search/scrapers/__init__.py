"""Listing and price-history sources."""

from property_search.scrapers.property_log import PropertyLogSource
from property_search.scrapers.rightmove import (
    LocationNotFoundError,
    RightmoveSource,
    UnrecognizedPriceFrequencyError,
)

__all__ = [
    "LocationNotFoundError",
    "PropertyLogSource",
    "RightmoveSource",
    "UnrecognizedPriceFrequencyError",
]
