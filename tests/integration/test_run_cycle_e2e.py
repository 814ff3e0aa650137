"""End-to-end tests for run_cycle() with mocked HTTP boundaries.

Tests the full path: feed -> store -> geocode -> travel time -> queue -> WhatsApp,
using a real SQLite file and intercepting Google Maps and the bridge with respx.
"""

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx

from rental_alerts.config import Settings
from rental_alerts.db import ListingStorage
from rental_alerts.main import run_cycle, run_dispatch_only
from rental_alerts.models import NotificationStatus, UserContact, UserPreferences

MAPS = "https://maps.googleapis.com/maps/api"
BRIDGE = "http://bridge.test:3000"

GEOCODE_OK: dict[str, Any] = {
    "status": "OK",
    "results": [
        {
            "formatted_address": "SQN 210 - Asa Norte, Brasília - DF",
            "place_id": "ChIJ-geo",
            "geometry": {"location": {"lat": -15.7625, "lng": -47.8825}},
        }
    ],
}


def _directions(seconds: int) -> dict[str, Any]:
    return {"status": "OK", "routes": [{"legs": [{"duration": {"value": seconds}}]}]}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    feed = tmp_path / "listings.json"
    feed.write_text(
        json.dumps(
            [
                {
                    "id": "1001",
                    "url": "https://www.dfimoveis.com.br/imovel/1001",
                    "street": "SQN 210 Bloco A",
                    "neighborhood": "Asa Norte",
                    "city": "Brasília",
                    "rent": 1200,
                    "condo_fee": 100,
                    "bedrooms": 2,
                    "parking_spots": 1,
                    "created_at": "2026-10-19T09:00:00+00:00",
                }
            ]
        ),
        encoding="utf-8",
    )
    return Settings(
        google_maps_api_key="test-key",
        whatsapp_bridge_url=BRIDGE,
        database_path=str(tmp_path / "alerts.db"),
        listing_feed_path=str(feed),
        ingest_delay_seconds=0,
    )


async def _seed_profile(settings: Settings) -> None:
    storage = ListingStorage(settings.database_path)
    await storage.initialize()
    try:
        await storage.save_preferences(
            UserPreferences.model_validate(
                {
                    "userId": "user-1",
                    "price": {"rent": [1000, 1500], "condo": [0, 200]},
                    "bedrooms": 2,
                    "parkingSpots": 1,
                    "locations": [
                        {
                            "id": "work",
                            "type": "specific",
                            "target": "Esplanada dos Ministérios",
                            "maxTime": 20,
                            "travelMode": "DRIVING",
                        }
                    ],
                }
            )
        )
        await storage.save_user_contact(
            UserContact(user_id="user-1", phone_number="5561999998888")
        )
    finally:
        await storage.close()


async def _records(settings: Settings) -> list[tuple[str, NotificationStatus]]:
    storage = ListingStorage(settings.database_path)
    await storage.initialize()
    try:
        return [(r.listing_id, r.status) for r in await storage.get_notifications()]
    finally:
        await storage.close()


@pytest.mark.integration
class TestRunCycle:
    @respx.mock
    async def test_match_is_delivered_once(self, settings: Settings) -> None:
        await _seed_profile(settings)
        respx.get(f"{MAPS}/geocode/json").mock(
            return_value=httpx.Response(200, json=GEOCODE_OK)
        )
        respx.get(f"{MAPS}/directions/json").mock(
            return_value=httpx.Response(200, json=_directions(18 * 60))
        )
        send = respx.post(f"{BRIDGE}/api/send").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        summary = await run_cycle(settings)

        assert summary.matches == 1
        assert summary.enqueued == 1
        assert send.call_count == 1
        body = json.loads(send.calls.last.request.content)
        assert body["recipient"] == "5561999998888"
        assert "https://www.dfimoveis.com.br/imovel/1001" in body["message"]
        assert await _records(settings) == [("1001", NotificationStatus.SENT)]

        # Second cycle: the listing is already known, nothing new is sent
        again = await run_cycle(settings)
        assert again.listings == 0
        assert send.call_count == 1

    @respx.mock
    async def test_too_far_is_never_queued(self, settings: Settings) -> None:
        await _seed_profile(settings)
        respx.get(f"{MAPS}/geocode/json").mock(
            return_value=httpx.Response(200, json=GEOCODE_OK)
        )
        respx.get(f"{MAPS}/directions/json").mock(
            return_value=httpx.Response(200, json=_directions(25 * 60))
        )
        send = respx.post(f"{BRIDGE}/api/send").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        summary = await run_cycle(settings)

        assert summary.matches == 0
        assert not send.called
        assert await _records(settings) == []

    @respx.mock
    async def test_match_only_then_dispatch(self, settings: Settings) -> None:
        await _seed_profile(settings)
        respx.get(f"{MAPS}/geocode/json").mock(
            return_value=httpx.Response(200, json=GEOCODE_OK)
        )
        respx.get(f"{MAPS}/directions/json").mock(
            return_value=httpx.Response(200, json=_directions(10 * 60))
        )
        send = respx.post(f"{BRIDGE}/api/send").mock(
            return_value=httpx.Response(
                500, json={"success": False, "message": "WhatsApp client not ready"}
            )
        )

        await run_cycle(settings, deliver=False)
        assert await _records(settings) == [("1001", NotificationStatus.PENDING)]

        summary = await run_dispatch_only(settings)

        assert summary.failed == 1
        assert send.call_count == 1
        assert await _records(settings) == [("1001", NotificationStatus.FAILED)]
