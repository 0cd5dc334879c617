"""Shared pytest fixtures."""

import gc
import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any

import pytest
import pytest_asyncio
from hypothesis import HealthCheck, settings

from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.models import Listing, TubeStation

# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=10)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file and PROPERTY_SEARCH_* variables leaking into tests."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )
    for name in list(os.environ):
        if name.startswith("PROPERTY_SEARCH_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def _cleanup_aiosqlite_threads():
    """Safety net: detect and stop leaked aiosqlite worker threads.

    aiosqlite creates a non-daemon worker thread per connection. A leaked
    connection keeps the process from exiting.
    """
    yield

    from aiosqlite.core import Connection

    leaked = False
    gc.collect()
    for obj in gc.get_objects():
        if isinstance(obj, Connection) and obj._connection is not None:
            leaked = True
            obj.stop()

    if leaked:
        import warnings

        warnings.warn(
            "Test leaked aiosqlite connection(s): add 'await storage.close()' to fixture teardown",
            ResourceWarning,
            stacklevel=1,
        )


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no delays, for fast task tests."""
    return Settings(
        database_path=":memory:",
        http_retry_backoff_seconds=0,
        search_page_retry_delay_seconds=0,
        propertylog_retry_delay_seconds=0,
    )


@pytest_asyncio.fixture
async def storage() -> AsyncGenerator[PropertySearchStorage, None]:
    """Create an in-memory storage instance."""
    storage = PropertySearchStorage(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def bank_station() -> TubeStation:
    return TubeStation(
        id="940GZZLUBNK",
        name="Bank Underground Station",
        postcode="EC3V 3LA",
        coordinates=(-0.088899, 51.513356),
        lines=frozenset({"central", "northern", "waterloo-city"}),
    )


@pytest.fixture
def make_listing() -> Callable[..., Listing]:
    """Factory for Listing instances with auto-incrementing ids."""
    _counter = 0

    def _make(**overrides: Any) -> Listing:
        nonlocal _counter
        _counter += 1
        defaults: dict[str, Any] = {
            "id": 100_000 + _counter,
            "coordinates": (-0.1, 51.5),
            "price": 2000.0,
            "square_feet": None,
            "post_date": datetime(2024, 1, 1, tzinfo=UTC),
            "reduced_date": None,
            "transacted": False,
        }
        defaults.update(overrides)
        return Listing(**defaults)

    return _make


@pytest.fixture
def make_raw_property() -> Callable[..., dict[str, Any]]:
    """Factory for raw ``/api/_search`` property dicts."""

    def _make(property_id: int, **overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "id": property_id,
            "location": {"latitude": 51.53, "longitude": -0.12},
            "price": {"amount": 2000, "frequency": "monthly", "currencyCode": "GBP"},
            "displaySize": "",
            "firstVisibleDate": "2024-01-01T09:00:00Z",
            "listingUpdate": {
                "listingUpdateReason": "new",
                "listingUpdateDate": "2024-01-01T09:00:00Z",
            },
            "propertySubType": "Flat",
            "displayStatus": "",
        }
        raw.update(overrides)
        return raw

    return _make
