"""Tests for SQLite storage."""

import math
import sqlite3
from datetime import UTC, datetime

import pytest

from property_search.aggregation.stats import Stats
from property_search.db.storage import PropertySearchStorage
from property_search.models import (
    LastUpdated,
    PropertyAction,
    PropertyStats,
    PropertySummary,
    School,
    SchoolRating,
    TubeStation,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)
T1 = datetime(2024, 2, 1, tzinfo=UTC)


def _summary(num_beds: int, *, median: float = 2000.0) -> PropertySummary:
    price = Stats(min=1500, q1=1800, median=median, q3=2200, max=2600, count=12)
    return PropertySummary(
        postcode="EC3V 3LA",
        coordinates=(-0.088899, 51.513356),
        action=PropertyAction.RENT,
        num_beds=num_beds,
        stats=PropertyStats(
            price=price,
            listed_days=Stats.from_values([1, 5, 9]),
            percent_transacted=Stats.from_values([0.5, 0.5]),
            square_feet=Stats.empty(),
            one_month_pct_change=Stats.empty(),
        ),
    )


async def _add_failing_insert_trigger(storage: PropertySearchStorage) -> None:
    """Make any insert of a 99-bedroom summary abort mid-transaction."""
    conn = await storage._get_connection()
    await conn.execute("""
        CREATE TRIGGER fail_on_99_beds BEFORE INSERT ON property_summaries
        WHEN NEW.num_beds = 99
        BEGIN
            SELECT RAISE(ABORT, 'simulated insert failure');
        END
    """)
    await conn.commit()


class TestPropertySummaries:
    @pytest.mark.asyncio
    async def test_round_trip(self, storage: PropertySearchStorage) -> None:
        summaries = [_summary(0), _summary(1, median=2500)]
        await storage.replace_property_summaries(summaries, updated_at=T0)

        stored = await storage.get_property_summaries()

        assert [s.num_beds for s in stored] == [0, 1]
        assert stored[1].stats.price.median == 2500
        assert stored[0].action == PropertyAction.RENT
        assert stored[0].coordinates == (-0.088899, 51.513356)
        assert stored[0].stats.square_feet.count == 0
        assert math.isnan(stored[0].stats.square_feet.median)

    @pytest.mark.asyncio
    async def test_replace_removes_previous(self, storage: PropertySearchStorage) -> None:
        await storage.replace_property_summaries([_summary(0), _summary(1)], updated_at=T0)
        await storage.replace_property_summaries([_summary(3)], updated_at=T1)

        stored = await storage.get_property_summaries()

        assert [s.num_beds for s in stored] == [3]
        assert (await storage.get_last_updated()).property == int(T1.timestamp() * 1000)

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_old_state(self, storage: PropertySearchStorage) -> None:
        await storage.replace_property_summaries([_summary(0), _summary(1)], updated_at=T0)
        await _add_failing_insert_trigger(storage)

        with pytest.raises(sqlite3.IntegrityError, match="simulated insert failure"):
            await storage.replace_property_summaries([_summary(2), _summary(99)], updated_at=T1)

        stored = await storage.get_property_summaries()
        assert [s.num_beds for s in stored] == [0, 1]
        assert (await storage.get_last_updated()).property == int(T0.timestamp() * 1000)

    @pytest.mark.asyncio
    async def test_storage_usable_after_failed_replace(
        self, storage: PropertySearchStorage
    ) -> None:
        await _add_failing_insert_trigger(storage)
        with pytest.raises(sqlite3.IntegrityError):
            await storage.replace_property_summaries([_summary(99)], updated_at=T0)

        await storage.replace_property_summaries([_summary(2)], updated_at=T1)

        assert [s.num_beds for s in await storage.get_property_summaries()] == [2]


class TestReferenceData:
    @pytest.mark.asyncio
    async def test_tube_stations_round_trip(
        self, storage: PropertySearchStorage, bank_station: TubeStation
    ) -> None:
        no_postcode = TubeStation(
            id="940GZZLUXXX", name="Nowhere", postcode=None, coordinates=(0.0, 51.0)
        )
        await storage.replace_tube_stations([bank_station, no_postcode], updated_at=T0)

        stored = {s.id: s for s in await storage.get_tube_stations()}

        assert stored["940GZZLUBNK"] == bank_station
        assert stored["940GZZLUXXX"].postcode is None
        assert stored["940GZZLUXXX"].lines == frozenset()

    @pytest.mark.asyncio
    async def test_schools_round_trip(self, storage: PropertySearchStorage) -> None:
        school = School(
            id=100000,
            name="Sir John Cass's Foundation Primary School",
            postcode="EC3A 5DE",
            coordinates=(-0.077, 51.514),
            rating=SchoolRating.OUTSTANDING,
            inspection_date=1_554_076_800_000,
        )
        await storage.replace_schools([school], updated_at=T0)

        assert await storage.get_schools() == [school]


class TestLastUpdated:
    @pytest.mark.asyncio
    async def test_empty_database(self, storage: PropertySearchStorage) -> None:
        assert await storage.get_last_updated() == LastUpdated()

    @pytest.mark.asyncio
    async def test_each_dataset_stamps_its_own_column(
        self, storage: PropertySearchStorage, bank_station: TubeStation
    ) -> None:
        await storage.replace_tube_stations([bank_station], updated_at=T0)
        await storage.replace_property_summaries([_summary(0)], updated_at=T1)

        last_updated = await storage.get_last_updated()

        assert last_updated.tube == int(T0.timestamp() * 1000)
        assert last_updated.property == int(T1.timestamp() * 1000)
        assert last_updated.schools is None

    @pytest.mark.asyncio
    async def test_unknown_dataset_rejected_before_write(
        self, storage: PropertySearchStorage, bank_station: TubeStation
    ) -> None:
        await storage.replace_tube_stations([bank_station], updated_at=T0)

        with pytest.raises(ValueError, match="Unknown dataset"):
            await storage._replace(
                dataset="tube = 0; --",  # type: ignore[arg-type]
                table="tube_stations",
                insert_sql="INSERT INTO tube_stations VALUES (?)",
                rows=[],
                updated_at=T1,
            )

        assert await storage.get_tube_stations() == [bank_station]
        assert (await storage.get_last_updated()).tube == int(T0.timestamp() * 1000)

    @pytest.mark.asyncio
    async def test_file_database_creates_directory(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "search.db"
        storage = PropertySearchStorage(str(db_path))
        await storage.initialize()
        try:
            await storage.replace_schools([], updated_at=T0)
        finally:
            await storage.close()

        assert db_path.exists()
