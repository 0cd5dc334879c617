"""Rightmove listing source: location resolution and paginated search."""

import asyncio
import itertools
from collections.abc import Iterable
from datetime import UTC, datetime
from operator import attrgetter
from typing import Final, Protocol, TypeVar
from urllib.parse import parse_qs, urlsplit

from property_search.logging import get_logger
from property_search.models import Listing, PropertyAction
from property_search.scrapers.parsing import (
    UnrecognizedPriceFrequencyError,
    normalize_price,
    parse_square_feet,
)
from property_search.scrapers.rightmove_models import (
    RightmoveProperty,
    RightmoveSearchResponse,
    SearchResponseAdapter,
    TypeAheadAdapter,
)
from property_search.utils.http_client import (
    FetchExhaustedError,
    RateLimitedHttpClient,
    UnexpectedStatusError,
    decode_json,
)
from property_search.utils.retry import RetryPolicy

__all__ = [
    "LocationNotFoundError",
    "RightmoveSource",
    "UnrecognizedPriceFrequencyError",
    "dedupe_by_id",
    "filter_listings",
    "to_listing",
]

logger = get_logger(__name__)

# Sub-types that are not homes and would skew the price distribution
SUBTYPE_BLACKLIST: Final = frozenset(
    {
        "Garages",
        "Hotel Room",
        "Land",
        "Plot",
        "Parking",
        "Not Specified",
        "Office",
    }
)

# Display statuses of listings that have found a buyer or tenant (exact match)
TRANSACTED_STATUSES: Final = frozenset(
    {"let agreed", "sold subject to contract", "under offer"}
)

PRICE_REDUCED_REASON: Final = "price_reduced"


class LocationNotFoundError(Exception):
    """The location lookup succeeded but returned no location identifier."""

    def __init__(self, location: str) -> None:
        super().__init__(f"Location identifier not found for {location!r}")
        self.location = location


class _HasId(Protocol):
    @property
    def id(self) -> int: ...


H = TypeVar("H", bound=_HasId)


def tokenize_location(text: str) -> str:
    """Split a postcode into the 2-character path used by the type-ahead.

    The text is chunked as given, spaces included: ``"SW1A 2AA"`` ->
    ``"SW/1A/ 2/AA"``.
    """
    return "/".join(text[i : i + 2] for i in range(0, len(text), 2))


def filter_listings(properties: Iterable[RightmoveProperty]) -> list[RightmoveProperty]:
    """Drop listings whose sub-type is not a home."""
    return [p for p in properties if p.property_sub_type not in SUBTYPE_BLACKLIST]


def dedupe_by_id(items: Iterable[H]) -> list[H]:
    """Sort by id and keep the first of each run of equal ids.

    Independent of the order pages arrived in, so applying it again (or to a
    reshuffled input) gives the same ids.
    """
    ordered = sorted(items, key=attrgetter("id"))
    return [next(group) for _, group in itertools.groupby(ordered, key=attrgetter("id"))]


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def to_listing(prop: RightmoveProperty) -> Listing:
    """Normalize a raw search result.

    Raises:
        UnrecognizedPriceFrequencyError: The price frequency is unknown.
    """
    reduced_date: datetime | None = None
    update = prop.listing_update
    if (
        update is not None
        and update.listing_update_reason == PRICE_REDUCED_REASON
        and update.listing_update_date is not None
    ):
        reduced_date = _as_utc(update.listing_update_date)

    return Listing(
        id=prop.id,
        coordinates=(prop.location.longitude, prop.location.latitude),
        price=normalize_price(prop.price.amount, prop.price.frequency, listing_id=prop.id),
        square_feet=parse_square_feet(prop.display_size),
        post_date=_as_utc(prop.first_visible_date),
        reduced_date=reduced_date,
        transacted=prop.display_status in TRANSACTED_STATUSES,
    )


class RightmoveSource:
    """Client for Rightmove's location type-ahead and search API."""

    BASE_URL = "https://www.rightmove.co.uk"
    SEARCH_URL = f"{BASE_URL}/api/_search"
    TYPEAHEAD_URL = f"{BASE_URL}/typeAhead/uknostreet"
    PROBE_URL = f"{BASE_URL}/property-for-sale/search.html"

    # Fixed by the search API
    RESULTS_PER_PAGE = 24

    def __init__(
        self,
        http: RateLimitedHttpClient,
        *,
        page_retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            http: Shared client; its semaphore bounds every page request.
            page_retry_policy: Retries for a page answered with a non-2xx status
                (the search API sporadically returns 400 for valid queries).
        """
        self._http = http
        self._page_retry_policy = page_retry_policy or RetryPolicy(max_retries=3, delay=1.0)

    async def resolve_location(self, location_text: str) -> str:
        """Resolve a postcode or place name to a Rightmove location identifier.

        Uses the type-ahead endpoint, falling back to the search-page redirect
        probe when the type-ahead has no suggestion.

        Returns:
            Opaque identifier such as ``"POSTCODE^1234567"``.

        Raises:
            LocationNotFoundError: Neither lookup produced an identifier.
            FetchError: The lookup request itself failed.
        """
        if not location_text.strip():
            raise LocationNotFoundError(location_text)

        url = f"{self.TYPEAHEAD_URL}/{tokenize_location(location_text)}"
        response = await self._http.get(url)
        type_ahead = decode_json(
            response, TypeAheadAdapter, context=f"Type-ahead for {location_text!r}"
        )
        for location in type_ahead.type_ahead_locations:
            if location.location_identifier:
                logger.debug(
                    "rightmove_location_resolved",
                    location=location_text,
                    identifier=location.location_identifier,
                )
                return location.location_identifier

        identifier = await self.probe_location(location_text)
        if identifier is None:
            raise LocationNotFoundError(location_text)
        return identifier

    async def probe_location(self, location_text: str) -> str | None:
        """Find a location identifier from the search page's redirect.

        The search page answers a free-text location with a redirect whose
        query string carries the identifier, so redirects must not be followed.
        """
        response = await self._http.get_with_options(
            self.PROBE_URL,
            {"searchLocation": location_text, "useLocationIdentifier": "false"},
            follow_redirects=False,
        )
        if not response.is_redirect:
            return None
        target = response.headers.get("location", "")
        values = parse_qs(urlsplit(target).query).get("locationIdentifier", [])
        identifier = next((v for v in values if v), None)
        if identifier:
            logger.debug("rightmove_location_probed", location=location_text, identifier=identifier)
        return identifier

    async def search(
        self,
        location_identifier: str,
        action: PropertyAction,
        num_beds: int,
        radius: float,
    ) -> list[Listing]:
        """Fetch every page of a search and normalize the results.

        Page 0 is fetched first to learn the page count, then the remaining
        pages are fetched concurrently.

        Returns:
            Listings with unique ids, blacklisted sub-types removed.

        Raises:
            FetchError: A page kept failing, or a page body was malformed.
            UnrecognizedPriceFrequencyError: A price cannot be normalized.
        """
        if not location_identifier:
            return []

        base_params = {
            "locationIdentifier": location_identifier,
            "minBedrooms": str(num_beds),
            "maxBedrooms": str(num_beds),
            "numberOfPropertiesPerPage": str(self.RESULTS_PER_PAGE),
            "radius": str(radius),
            "includeSSTC": "true",
            "includeLetAgreed": "true",
            "viewType": "LIST",
            "channel": action.channel,
            "areaSizeUnit": "sqft",
            "currencyCode": "GBP",
        }

        first_page = await self._fetch_page(base_params, 0)
        more_pages = await asyncio.gather(
            *(self._fetch_page(base_params, page) for page in range(1, first_page.pagination.total))
        )

        raw = [p for page in (first_page, *more_pages) for p in page.properties]
        kept = dedupe_by_id(filter_listings(raw))
        listings = [to_listing(p) for p in kept]

        logger.info(
            "rightmove_search_complete",
            location=location_identifier,
            action=action.name.lower(),
            num_beds=num_beds,
            radius=radius,
            pages=max(first_page.pagination.total, 1),
            raw_count=len(raw),
            count=len(listings),
        )
        return listings

    async def _fetch_page(self, base_params: dict[str, str], page: int) -> RightmoveSearchResponse:
        """Fetch one page of results, retrying non-2xx answers."""
        params = {**base_params, "index": str(page * self.RESULTS_PER_PAGE)}

        async def fetch() -> RightmoveSearchResponse:
            response = await self._http.get_with_options(self.SEARCH_URL, params)
            return decode_json(
                response,
                SearchResponseAdapter,
                context=f"Search page {page} for {base_params['locationIdentifier']}",
            )

        return await self._page_retry_policy.run(
            fetch,
            retry_on=(UnexpectedStatusError, FetchExhaustedError),
            event="rightmove_page_retrying",
            location=base_params["locationIdentifier"],
            page=page,
        )
