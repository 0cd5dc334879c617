"""SQLite storage for reference locations and property summaries."""

import contextlib
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, Literal, get_args

import aiosqlite

from property_search.db.row_mappers import (
    property_summary_to_row,
    row_to_property_summary,
    row_to_school,
    row_to_tube_station,
    school_to_row,
    to_epoch_millis,
    tube_station_to_row,
)
from property_search.logging import get_logger
from property_search.models import LastUpdated, PropertySummary, School, TubeStation

logger = get_logger(__name__)

Dataset = Literal["property", "tube", "schools"]

# Allow-list for the last_updated column name, which is interpolated into SQL
_DATASETS: Final = frozenset(get_args(Dataset))


class PropertySearchStorage:
    """SQLite-backed store for stations, schools and property summaries.

    Every dataset is only ever replaced as a whole: ``replace_*`` deletes all
    rows, inserts the new ones and stamps ``last_updated`` in one transaction,
    so readers see either the old set or the new set.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Ensure the directory for the database exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA busy_timeout=5000")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def initialize(self) -> None:
        """Initialize the database schema."""
        conn = await self._get_connection()
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS tube_stations (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                postcode TEXT,
                longitude REAL NOT NULL,
                latitude REAL NOT NULL,
                lines TEXT NOT NULL DEFAULT '[]'
            )
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schools (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                postcode TEXT NOT NULL,
                longitude REAL NOT NULL,
                latitude REAL NOT NULL,
                rating INTEGER NOT NULL,
                inspection_date INTEGER
            )
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS property_summaries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                postcode TEXT NOT NULL,
                longitude REAL NOT NULL,
                latitude REAL NOT NULL,
                action INTEGER NOT NULL,
                num_beds INTEGER NOT NULL,
                stats_json TEXT NOT NULL
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_property_summaries_action_beds
            ON property_summaries(action, num_beds)
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS last_updated (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                property INTEGER,
                tube INTEGER,
                schools INTEGER
            )
        """)
        await conn.commit()

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit on success, roll back on any error."""
        conn = await self._get_connection()
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()

    async def _replace(
        self,
        *,
        dataset: Dataset,
        table: str,
        insert_sql: str,
        rows: Sequence[tuple[Any, ...]],
        updated_at: datetime | None,
    ) -> None:
        if dataset not in _DATASETS:
            raise ValueError(f"Unknown dataset: {dataset!r}")
        column = dataset
        stamp = to_epoch_millis(updated_at or datetime.now(UTC))
        async with self._transaction() as conn:
            await conn.execute(f"DELETE FROM {table}")  # noqa: S608
            await conn.executemany(insert_sql, rows)
            await conn.execute(
                f"""
                INSERT INTO last_updated (id, {column}) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET {column} = excluded.{column}
                """,
                (stamp,),
            )
        logger.info("dataset_replaced", dataset=dataset, count=len(rows), last_updated=stamp)

    # Tube stations

    async def get_tube_stations(self) -> list[TubeStation]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM tube_stations ORDER BY name, id")
        rows = await cursor.fetchall()
        return [row_to_tube_station(row) for row in rows]

    async def replace_tube_stations(
        self, stations: Iterable[TubeStation], *, updated_at: datetime | None = None
    ) -> None:
        """Replace every tube station and stamp ``last_updated.tube``."""
        await self._replace(
            dataset="tube",
            table="tube_stations",
            insert_sql="""
                INSERT INTO tube_stations (id, name, postcode, longitude, latitude, lines)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
            rows=[tube_station_to_row(s) for s in stations],
            updated_at=updated_at,
        )

    # Schools

    async def get_schools(self) -> list[School]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM schools ORDER BY id")
        rows = await cursor.fetchall()
        return [row_to_school(row) for row in rows]

    async def replace_schools(
        self, schools: Iterable[School], *, updated_at: datetime | None = None
    ) -> None:
        """Replace every school and stamp ``last_updated.schools``."""
        await self._replace(
            dataset="schools",
            table="schools",
            insert_sql="""
                INSERT INTO schools
                (id, name, postcode, longitude, latitude, rating, inspection_date)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            rows=[school_to_row(s) for s in schools],
            updated_at=updated_at,
        )

    # Property summaries

    async def get_property_summaries(self) -> list[PropertySummary]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM property_summaries ORDER BY id")
        rows = await cursor.fetchall()
        return [row_to_property_summary(row) for row in rows]

    async def replace_property_summaries(
        self, summaries: Iterable[PropertySummary], *, updated_at: datetime | None = None
    ) -> None:
        """Replace every property summary and stamp ``last_updated.property``.

        On any failure the previous summaries and timestamp are left intact.
        """
        await self._replace(
            dataset="property",
            table="property_summaries",
            insert_sql="""
                INSERT INTO property_summaries
                (postcode, longitude, latitude, action, num_beds, stats_json)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
            rows=[property_summary_to_row(s) for s in summaries],
            updated_at=updated_at,
        )

    async def get_last_updated(self) -> LastUpdated:
        """Completion time of the last refresh of each dataset."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT property, tube, schools FROM last_updated WHERE id = 1")
        row = await cursor.fetchone()
        if row is None:
            return LastUpdated()
        return LastUpdated(property=row["property"], tube=row["tube"], schools=row["schools"])
