"""Pydantic models for listings, statistics and reference locations."""

from datetime import datetime
from enum import IntEnum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from property_search.aggregation.stats import Stats

# (longitude, latitude), the order used by the map front end
Coordinates = tuple[float, float]


class PropertyAction(IntEnum):
    """Transaction type of a listing search.

    The integer values are the codes stored with each summary and read by
    the front end.
    """

    BUY = 1
    RENT = 2

    @property
    def channel(self) -> str:
        """Rightmove search channel for this action."""
        return _CHANNELS[self]


_CHANNELS: Final[dict[PropertyAction, str]] = {
    PropertyAction.BUY: "BUY",
    PropertyAction.RENT: "RENT",
}


class Listing(BaseModel):
    """A normalized listing from one search, discarded after aggregation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Rightmove property id")
    coordinates: Coordinates
    price: float = Field(
        ge=0,
        description="Monthly amount for rentals, total price for sales",
    )
    square_feet: int | None = Field(default=None, gt=0)
    post_date: datetime
    reduced_date: datetime | None = None
    transacted: bool = False


class PriceHistoryRecord(BaseModel):
    """One historical asking price."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    price: int = Field(ge=0)


class PriceHistory(BaseModel):
    """Price changes of one listing, oldest first."""

    model_config = ConfigDict(frozen=True)

    id: int
    records: tuple[PriceHistoryRecord, ...] = ()


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PropertyStats(_CamelModel):
    """Per-metric distributions for one location/action/bedroom combination."""

    price: Stats
    listed_days: Stats
    percent_transacted: Stats
    square_feet: Stats
    one_month_pct_change: Stats


class PropertySummary(_CamelModel):
    """Aggregated market statistics around one station; the persisted unit."""

    postcode: str
    coordinates: Coordinates
    action: PropertyAction
    num_beds: int = Field(ge=0)
    stats: PropertyStats


class TubeStation(_CamelModel):
    """A London Underground station used as a search location."""

    id: str = Field(description="NaPTAN id")
    name: str
    postcode: str | None = None
    coordinates: Coordinates
    lines: frozenset[str] = frozenset()

    @field_validator("postcode")
    @classmethod
    def normalize_postcode(cls, v: str | None) -> str | None:
        """Normalize postcode to uppercase with single space."""
        if v is None:
            return None
        normalized = " ".join(v.upper().split())
        return normalized or None


class SchoolRating(IntEnum):
    """Latest Ofsted rating."""

    UNKNOWN = 0
    OUTSTANDING = 1
    GOOD = 2
    REQUIRES_IMPROVEMENT = 3
    INADEQUATE = 4


class School(_CamelModel):
    """A school with its Ofsted rating."""

    id: int = Field(description="Unique reference number (URN)")
    name: str
    postcode: str
    coordinates: Coordinates
    rating: SchoolRating = SchoolRating.UNKNOWN
    inspection_date: int | None = Field(
        default=None, description="Last inspection, unix milliseconds"
    )


class LastUpdated(_CamelModel):
    """Completion time of the last refresh of each dataset, unix milliseconds."""

    property: int | None = None
    tube: int | None = None
    schools: int | None = None
