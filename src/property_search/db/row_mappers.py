"""Row <-> model conversion for the storage tables."""

import json
from datetime import UTC, datetime

import aiosqlite

from property_search.models import (
    PropertyAction,
    PropertyStats,
    PropertySummary,
    School,
    SchoolRating,
    TubeStation,
)


def to_epoch_millis(value: datetime) -> int:
    """UTC epoch milliseconds; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def tube_station_to_row(station: TubeStation) -> tuple[str, str, str | None, float, float, str]:
    return (
        station.id,
        station.name,
        station.postcode,
        station.coordinates[0],
        station.coordinates[1],
        json.dumps(sorted(station.lines)),
    )


def row_to_tube_station(row: aiosqlite.Row) -> TubeStation:
    return TubeStation(
        id=row["id"],
        name=row["name"],
        postcode=row["postcode"],
        coordinates=(row["longitude"], row["latitude"]),
        lines=frozenset(json.loads(row["lines"])),
    )


def school_to_row(school: School) -> tuple[int, str, str, float, float, int, int | None]:
    return (
        school.id,
        school.name,
        school.postcode,
        school.coordinates[0],
        school.coordinates[1],
        int(school.rating),
        school.inspection_date,
    )


def row_to_school(row: aiosqlite.Row) -> School:
    return School(
        id=row["id"],
        name=row["name"],
        postcode=row["postcode"],
        coordinates=(row["longitude"], row["latitude"]),
        rating=SchoolRating(row["rating"]),
        inspection_date=row["inspection_date"],
    )


def property_summary_to_row(summary: PropertySummary) -> tuple[str, float, float, int, int, str]:
    """Stats are kept as camelCase JSON; NaN is written as null."""
    return (
        summary.postcode,
        summary.coordinates[0],
        summary.coordinates[1],
        int(summary.action),
        summary.num_beds,
        summary.stats.model_dump_json(by_alias=True),
    )


def row_to_property_summary(row: aiosqlite.Row) -> PropertySummary:
    return PropertySummary(
        postcode=row["postcode"],
        coordinates=(row["longitude"], row["latitude"]),
        action=PropertyAction(row["action"]),
        num_beds=row["num_beds"],
        stats=PropertyStats.model_validate_json(row["stats_json"]),
    )
