"""Refresh the schools from the DfE school information and postcode CSVs."""

import csv
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.db.row_mappers import to_epoch_millis
from property_search.logging import get_logger
from property_search.models import Coordinates, School, SchoolRating

logger = get_logger(__name__)

_RATINGS: Final[dict[str, SchoolRating]] = {
    "Outstanding": SchoolRating.OUTSTANDING,
    "Good": SchoolRating.GOOD,
    "Requires improvement": SchoolRating.REQUIRES_IMPROVEMENT,
    "Special Measures": SchoolRating.INADEQUATE,
    "Serious Weaknesses": SchoolRating.INADEQUATE,
    "Inadequate": SchoolRating.INADEQUATE,
}


def parse_rating(text: str | None) -> SchoolRating:
    """Map an Ofsted rating label; anything unrecognised is UNKNOWN."""
    if not text:
        return SchoolRating.UNKNOWN
    return _RATINGS.get(text.strip(), SchoolRating.UNKNOWN)


def parse_inspection_date(text: str | None) -> int | None:
    """``DD-MM-YYYY`` as epoch milliseconds at midnight UTC."""
    if not text or not text.strip():
        return None
    try:
        parsed = datetime.strptime(text.strip(), "%d-%m-%Y").replace(tzinfo=UTC)
    except ValueError:
        logger.warning("inspection_date_unparseable", value=text)
        return None
    return to_epoch_millis(parsed)


def _read_rows(path: Path) -> Iterator[dict[str, str]]:
    with path.open(newline="", encoding="utf-8-sig", errors="replace") as f:
        yield from csv.DictReader(f)


def load_postcode_coordinates(path: Path) -> dict[str, Coordinates]:
    """Postcode (``pcds`` column) -> (longitude, latitude)."""
    coordinates: dict[str, Coordinates] = {}
    for row in _read_rows(path):
        try:
            coordinates[row["pcds"]] = (float(row["long"]), float(row["lat"]))
        except (KeyError, TypeError, ValueError):
            continue
    return coordinates


def to_school(row: Mapping[str, str], coordinates: Coordinates) -> School | None:
    try:
        urn = int(row["URN"])
    except (KeyError, TypeError, ValueError):
        return None
    return School(
        id=urn,
        name=row.get("SCHNAME") or "",
        postcode=row["POSTCODE"],
        coordinates=coordinates,
        rating=parse_rating(row.get("OFSTEDRATING")),
        inspection_date=parse_inspection_date(row.get("OFSTEDLASTINSP")),
    )


def load_schools(schools_csv: Path, postcodes_csv: Path) -> list[School]:
    """Join schools to postcode coordinates; schools without a match are dropped."""
    postcode_coordinates = load_postcode_coordinates(postcodes_csv)
    schools: list[School] = []
    unmatched = 0
    for row in _read_rows(schools_csv):
        coordinates = postcode_coordinates.get(row.get("POSTCODE") or "")
        if coordinates is None:
            unmatched += 1
            continue
        school = to_school(row, coordinates)
        if school is None:
            unmatched += 1
            continue
        schools.append(school)
    logger.info("schools_loaded", count=len(schools), unmatched=unmatched)
    return schools


async def update_schools(settings: Settings, storage: PropertySearchStorage) -> int:
    """Replace the stored schools. Returns the number stored."""
    schools = load_schools(Path(settings.schools_csv_path), Path(settings.postcodes_csv_path))
    await storage.replace_schools(schools)
    return len(schools)
