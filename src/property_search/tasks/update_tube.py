"""Refresh the tube stations from the TfL unified API."""

import asyncio
import re
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.logging import get_logger
from property_search.models import TubeStation
from property_search.utils.http_client import RateLimitedHttpClient, decode_json

logger = get_logger(__name__)

TFL_API_URL = "https://api.tfl.gov.uk"

# Postcode is the last comma-separated part of the station address
_POSTCODE_PATTERN = re.compile(r".*,([A-Z0-9 ]+)")


class TflLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class TflLineModeGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mode_name: str = Field(validation_alias="modeName")
    line_identifier: list[str] = Field(default_factory=list, validation_alias="lineIdentifier")


class TflAdditionalProperty(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str = ""
    key: str = ""
    value: str = ""


class TflStopPoint(BaseModel):
    """A station as listed by ``/Line/{id}/StopPoints``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    common_name: str = Field(validation_alias="commonName")
    lat: float
    lon: float
    line_mode_groups: list[TflLineModeGroup] = Field(
        default_factory=list, validation_alias="lineModeGroups"
    )
    additional_properties: list[TflAdditionalProperty] = Field(
        default_factory=list, validation_alias="additionalProperties"
    )


TflLinesAdapter = TypeAdapter(list[TflLine])
TflStopPointsAdapter = TypeAdapter(list[TflStopPoint])


def extract_postcode(stop_point: TflStopPoint) -> str | None:
    """Postcode from the stop point's ``Address`` property, if any."""
    address = next(
        (
            p.value
            for p in stop_point.additional_properties
            if p.category == "Address" and p.key == "Address"
        ),
        None,
    )
    if address is None:
        return None
    match = _POSTCODE_PATTERN.match(address)
    return match.group(1).strip() if match else None


def to_tube_station(stop_point: TflStopPoint) -> TubeStation:
    tube_lines = next(
        (g.line_identifier for g in stop_point.line_mode_groups if g.mode_name == "tube"),
        [],
    )
    return TubeStation(
        id=stop_point.id,
        name=stop_point.common_name,
        postcode=extract_postcode(stop_point),
        coordinates=(stop_point.lon, stop_point.lat),
        lines=frozenset(tube_lines),
    )


def merge_stations(stations: Iterable[TubeStation]) -> list[TubeStation]:
    """Collapse stations listed under several lines into one, unioning lines."""
    merged: dict[str, TubeStation] = {}
    for station in stations:
        existing = merged.get(station.id)
        if existing is None:
            merged[station.id] = station
        else:
            merged[station.id] = existing.model_copy(
                update={"lines": existing.lines | station.lines}
            )
    return list(merged.values())


class TflSource:
    """Tube lines and stations from the TfL unified API."""

    def __init__(self, http: RateLimitedHttpClient, *, base_url: str = TFL_API_URL) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def get_lines(self) -> list[str]:
        response = await self._http.get(f"{self._base_url}/Line/Mode/tube/Route")
        lines = decode_json(response, TflLinesAdapter, context="Tube lines")
        return [line.id for line in lines]

    async def get_stations(self, line: str) -> list[TubeStation]:
        response = await self._http.get(f"{self._base_url}/Line/{line}/StopPoints")
        stop_points = decode_json(response, TflStopPointsAdapter, context=f"Stations of {line}")
        return [to_tube_station(s) for s in stop_points]

    async def get_tube_stations(self) -> list[TubeStation]:
        """Every tube station, each listed once with all of its lines."""
        lines = await self.get_lines()
        per_line = await asyncio.gather(*(self.get_stations(line) for line in lines))
        stations = merge_stations(s for line_stations in per_line for s in line_stations)
        logger.info("tube_stations_fetched", lines=len(lines), stations=len(stations))
        return stations


async def update_tube(
    settings: Settings,
    storage: PropertySearchStorage,
    *,
    tfl: TflSource | None = None,
) -> int:
    """Replace the stored tube stations. Returns the number stored."""
    if tfl is not None:
        stations = await tfl.get_tube_stations()
    else:
        async with RateLimitedHttpClient(
            max_parallel_connections=settings.http_max_parallel_connections,
            max_retry_count=settings.http_max_retry_count,
            retry_backoff_seconds=settings.http_retry_backoff_seconds,
            timeout=settings.http_timeout_seconds,
        ) as http:
            stations = await TflSource(http).get_tube_stations()

    await storage.replace_tube_stations(stations)
    return len(stations)
