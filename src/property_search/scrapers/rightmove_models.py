"""Pydantic models for Rightmove JSON responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RightmoveTypeAheadLocation(BaseModel):
    """One suggestion from the location type-ahead."""

    model_config = ConfigDict(extra="ignore")

    display_name: str = Field(default="", validation_alias="displayName")
    location_identifier: str = Field(default="", validation_alias="locationIdentifier")


class RightmoveTypeAheadResponse(BaseModel):
    """Response of ``/typeAhead/uknostreet/...``."""

    model_config = ConfigDict(extra="ignore")

    type_ahead_locations: list[RightmoveTypeAheadLocation] = Field(
        default_factory=list, validation_alias="typeAheadLocations"
    )


class RightmoveLocation(BaseModel):
    """Geographic position of a listing."""

    model_config = ConfigDict(extra="ignore")

    latitude: float
    longitude: float


class RightmovePrice(BaseModel):
    """Asking price as published, before frequency normalization."""

    model_config = ConfigDict(extra="ignore")

    amount: float = Field(ge=0)
    # "weekly", "monthly", "yearly", "not specified"; absent for most sales
    frequency: str | None = None
    currency_code: str = Field(default="GBP", validation_alias="currencyCode")


class RightmoveListingUpdate(BaseModel):
    """Reason and date of the last change to a listing."""

    model_config = ConfigDict(extra="ignore")

    listing_update_reason: str | None = Field(default=None, validation_alias="listingUpdateReason")
    listing_update_date: datetime | None = Field(default=None, validation_alias="listingUpdateDate")


class RightmoveProperty(BaseModel):
    """A single listing from the ``/api/_search`` response."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    location: RightmoveLocation
    price: RightmovePrice
    display_size: str = Field(default="", validation_alias="displaySize")
    first_visible_date: datetime = Field(validation_alias="firstVisibleDate")
    listing_update: RightmoveListingUpdate | None = Field(
        default=None, validation_alias="listingUpdate"
    )
    property_sub_type: str | None = Field(default=None, validation_alias="propertySubType")
    display_status: str | None = Field(default=None, validation_alias="displayStatus")


class RightmovePagination(BaseModel):
    """Pagination block; ``total`` is the number of pages."""

    model_config = ConfigDict(extra="ignore")

    total: int = Field(default=0, ge=0)


class RightmoveSearchResponse(BaseModel):
    """One page of ``/api/_search``."""

    model_config = ConfigDict(extra="ignore")

    result_count: str = Field(default="0", validation_alias="resultCount")
    properties: list[RightmoveProperty] = Field(default_factory=list)
    pagination: RightmovePagination = Field(default_factory=RightmovePagination)


TypeAheadAdapter = TypeAdapter(RightmoveTypeAheadResponse)
SearchResponseAdapter = TypeAdapter(RightmoveSearchResponse)
