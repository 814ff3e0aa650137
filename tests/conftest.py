"""Shared pytest fixtures."""

import gc
import os
import threading
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from hypothesis import HealthCheck, settings
from pydantic import HttpUrl

from rental_alerts.config import Settings
from rental_alerts.db import ListingStorage
from rental_alerts.models import (
    Coordinates,
    GeocodeResult,
    Listing,
    LocationRule,
    PriceFilters,
    RuleKind,
    TravelMode,
    UserContact,
    UserPreferences,
)
from rental_alerts.utils.maps_client import GoogleMapsClient

# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=25)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent a local .env file from leaking into test Settings instances."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )


@pytest.fixture(autouse=True)
def _cleanup_aiosqlite_threads():
    """Safety net: stop aiosqlite worker threads leaked by a test.

    Each aiosqlite connection owns a non-daemon worker thread; a connection
    that is never closed keeps the test process alive.
    """
    yield

    from aiosqlite.core import Connection

    gc.collect()
    for obj in gc.get_objects():
        if isinstance(obj, Connection) and obj._connection is not None:
            obj.stop()

    for thread in threading.enumerate():
        if "_connection_worker_thread" in (thread.name or "") and thread.is_alive():
            thread.join(timeout=1.0)


@pytest_asyncio.fixture
async def storage() -> AsyncGenerator[ListingStorage, None]:
    """An initialized in-memory store."""
    store = ListingStorage(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def sample_listing() -> Listing:
    """A listing that passes the default sample preferences' numeric filters."""
    return Listing(
        id="1001",
        url=HttpUrl("https://www.dfimoveis.com.br/imovel/apartamento-2-quartos-1001"),
        kind="Apartamento",
        street="SQN 210 Bloco A",
        neighborhood="Asa Norte",
        city="Brasília",
        rent=1200,
        condo_fee=100,
        bedrooms=2,
        suites=1,
        parking_spots=1,
        area_sqm=68,
        created_at=datetime(2026, 10, 1, 12, 0, tzinfo=UTC),
    )


@pytest.fixture
def located_listing(sample_listing: Listing) -> Listing:
    return sample_listing.with_coordinates(Coordinates(latitude=-15.7625, longitude=-47.8825))


@pytest.fixture
def specific_rule() -> LocationRule:
    return LocationRule(
        id="rule-work",
        kind=RuleKind.SPECIFIC,
        target="Av X",
        max_time=20,
        travel_mode=TravelMode.DRIVING,
    )


@pytest.fixture
def generic_rule() -> LocationRule:
    return LocationRule(
        id="rule-gym",
        kind=RuleKind.GENERIC,
        target="academia",
        max_time=10,
        travel_mode=TravelMode.WALKING,
    )


@pytest.fixture
def sample_preferences(specific_rule: LocationRule) -> UserPreferences:
    return UserPreferences(
        user_id="user-1",
        price=PriceFilters(rent=(1000, 1500), condo=(0, 200)),
        bedrooms=2,
        parking_spots=1,
        locations=(specific_rule,),
    )


@pytest.fixture
def sample_contact() -> UserContact:
    return UserContact(user_id="user-1", phone_number="5561999998888")


@pytest.fixture
def geocode_result() -> GeocodeResult:
    return GeocodeResult(
        coordinates=Coordinates(latitude=-15.7625, longitude=-47.8825),
        formatted_address="SQN 210 Bloco A - Asa Norte, Brasília - DF",
        place_id="geo-1",
    )


@pytest.fixture
def mock_maps() -> MagicMock:
    """A GoogleMapsClient double with async lookup methods."""
    maps = MagicMock(spec=GoogleMapsClient)
    maps.geocode = AsyncMock(return_value=None)
    maps.nearest_place = AsyncMock(return_value=None)
    maps.route_duration_seconds = AsyncMock(return_value=None)
    maps.close = AsyncMock()
    return maps
