"""Refresh the property summaries around every tube station.

Stations are loaded from storage, resolved to Rightmove location
identifiers, and searched once per action/bedroom/radius combination. Every
search is aggregated into a :class:`PropertySummary` and the full set
replaces the stored summaries in one transaction. Any failed search aborts
the run before anything is written.
"""

import asyncio
import contextlib
import itertools
from dataclasses import dataclass
from datetime import datetime

import httpx

from property_search.aggregation.aggregator import calculate_stats
from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.logging import get_logger
from property_search.models import PropertyAction, PropertySummary, TubeStation
from property_search.scrapers.property_log import PROPERTY_LOG_REFERER, PropertyLogSource
from property_search.scrapers.rightmove import LocationNotFoundError, RightmoveSource
from property_search.utils.http_client import FetchError, RateLimitedHttpClient
from property_search.utils.retry import RetryPolicy

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedStation:
    """A station paired with its Rightmove location identifier."""

    station: TubeStation
    location_identifier: str


@dataclass
class UpdatePropertyResult:
    """Counts reported by one property refresh."""

    stations: int = 0
    resolved: int = 0
    summaries: int = 0


def build_rightmove_client(settings: Settings) -> RateLimitedHttpClient:
    return RateLimitedHttpClient(
        max_parallel_connections=settings.http_max_parallel_connections,
        max_retry_count=settings.http_max_retry_count,
        retry_backoff_seconds=settings.http_retry_backoff_seconds,
        timeout=settings.http_timeout_seconds,
    )


def build_property_log_client(settings: Settings) -> RateLimitedHttpClient:
    return RateLimitedHttpClient(
        max_parallel_connections=settings.propertylog_max_parallel_connections,
        max_retry_count=settings.http_max_retry_count,
        retry_backoff_seconds=settings.http_retry_backoff_seconds,
        referer=PROPERTY_LOG_REFERER,
        timeout=settings.http_timeout_seconds,
    )


async def resolve_stations(
    rightmove: RightmoveSource, stations: list[TubeStation]
) -> list[ResolvedStation]:
    """Resolve every station concurrently, skipping the ones that fail.

    A station without a postcode, or whose lookup finds nothing or errors,
    is logged and left out of the run.
    """

    async def resolve(station: TubeStation) -> ResolvedStation | None:
        if not station.postcode:
            logger.warning(
                "location_resolution_failed",
                station=station.name,
                reason="missing_postcode",
            )
            return None
        # Non-transient transport failures arrive as raw httpx.HTTPError
        try:
            identifier = await rightmove.resolve_location(station.postcode)
        except (LocationNotFoundError, FetchError, httpx.HTTPError) as e:
            logger.warning(
                "location_resolution_failed",
                station=station.name,
                postcode=station.postcode,
                error=str(e),
            )
            return None
        return ResolvedStation(station=station, location_identifier=identifier)

    results = await asyncio.gather(*(resolve(s) for s in stations))
    return [r for r in results if r is not None]


async def summarize_search(
    rightmove: RightmoveSource,
    property_log: PropertyLogSource | None,
    resolved: ResolvedStation,
    action: PropertyAction,
    num_beds: int,
    radius: float,
    *,
    now: datetime | None = None,
) -> PropertySummary:
    """Search one combination and aggregate it into a summary."""
    listings = await rightmove.search(resolved.location_identifier, action, num_beds, radius)
    histories = None
    if property_log is not None:
        histories = await property_log.get_history([listing.id for listing in listings])

    stats = calculate_stats(listings, histories, now=now)
    station = resolved.station
    logger.info(
        "property_stats_calculated",
        station=station.name,
        postcode=station.postcode,
        action=action.name.lower(),
        num_beds=num_beds,
        radius=radius,
        listings=len(listings),
    )
    return PropertySummary(
        postcode=station.postcode or "",
        coordinates=station.coordinates,
        action=action,
        num_beds=num_beds,
        stats=stats,
    )


async def update_property(
    settings: Settings,
    storage: PropertySearchStorage,
    *,
    rightmove: RightmoveSource | None = None,
    property_log: PropertyLogSource | None = None,
    now: datetime | None = None,
) -> UpdatePropertyResult:
    """Rebuild and atomically replace all property summaries.

    Args:
        settings: Application settings.
        storage: Store holding the tube stations; receives the summaries.
        rightmove: Listing source (built from settings when omitted).
        property_log: Price-history source. When omitted it is built from
            settings if PropertyLog credentials are configured.
        now: Reference time for listed days.

    Raises:
        FetchError: A search failed; stored summaries are untouched.
        UnrecognizedPriceFrequencyError: A listing price could not be normalized.
    """
    result = UpdatePropertyResult()

    async with contextlib.AsyncExitStack() as stack:
        if rightmove is None:
            http = await stack.enter_async_context(build_rightmove_client(settings))
            rightmove = RightmoveSource(
                http,
                page_retry_policy=RetryPolicy(
                    max_retries=settings.search_page_retry_count,
                    delay=settings.search_page_retry_delay_seconds,
                ),
            )
        if property_log is None and settings.price_history_enabled:
            log_http = await stack.enter_async_context(build_property_log_client(settings))
            property_log = PropertyLogSource(
                log_http,
                user=settings.propertylog_user.get_secret_value(),
                retry_policy=RetryPolicy(
                    max_retries=settings.propertylog_max_retry_count,
                    delay=settings.propertylog_retry_delay_seconds,
                ),
            )

        stations = await storage.get_tube_stations()
        result.stations = len(stations)
        logger.info("property_update_started", stations=len(stations))

        resolved = await resolve_stations(rightmove, stations)
        result.resolved = len(resolved)
        logger.info(
            "locations_resolved",
            resolved=len(resolved),
            skipped=len(stations) - len(resolved),
        )

        combinations = list(
            itertools.product(
                resolved,
                settings.get_bed_counts(),
                [settings.search_radius],
                list(PropertyAction),
            )
        )
        outcomes = await asyncio.gather(
            *(
                summarize_search(
                    rightmove, property_log, station, action, num_beds, radius, now=now
                )
                for station, num_beds, radius, action in combinations
            ),
            return_exceptions=True,
        )

    errors = [o for o in outcomes if isinstance(o, BaseException)]
    if errors:
        logger.error(
            "property_update_failed",
            failed=len(errors),
            total=len(outcomes),
            error=str(errors[0]),
        )
        raise errors[0]

    summaries = [o for o in outcomes if isinstance(o, PropertySummary)]
    await storage.replace_property_summaries(summaries)
    result.summaries = len(summaries)
    logger.info(
        "property_update_complete",
        stations=result.stations,
        resolved=result.resolved,
        summaries=result.summaries,
    )
    return result
