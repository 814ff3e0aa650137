"""Google Maps web service client (geocoding, nearby places, directions)."""

from datetime import datetime
from typing import Any, Final

import httpx

from rental_alerts.logging import get_logger
from rental_alerts.models import Coordinates, GeocodeResult, Place, TravelMode

logger = get_logger(__name__)

_BASE_URL: Final = "https://maps.googleapis.com/maps/api"
_DEFAULT_TIMEOUT: Final = 10.0

# Statuses meaning "the request was fine, there is just nothing there"
_EMPTY_STATUSES: Final = frozenset({"ZERO_RESULTS", "NOT_FOUND"})


class MapsServiceError(Exception):
    """The maps service rejected a request or returned an unusable response."""

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class MapsTransportError(MapsServiceError):
    """Network failure or timeout talking to the maps service."""


def _parse_coordinates(location: dict[str, Any] | None) -> Coordinates | None:
    if not location or "lat" not in location or "lng" not in location:
        return None
    return Coordinates(latitude=location["lat"], longitude=location["lng"])


class GoogleMapsClient:
    """Thin async wrapper over the Google Maps JSON endpoints.

    Every lookup returns ``None`` for an empty result and raises
    :class:`MapsServiceError` for anything else that went wrong, so callers can
    tell "nothing found" apart from "could not ask".
    """

    def __init__(
        self,
        *,
        api_key: str,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        base_url: str = _BASE_URL,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GoogleMapsClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(self, endpoint: str, params: dict[str, str]) -> dict[str, Any] | None:
        """GET an endpoint and return its JSON body, or None for an empty result."""
        url = f"{self.base_url}/{endpoint}/json"
        try:
            resp = await self._get_client().get(url, params={**params, "key": self.api_key})
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()
        except httpx.HTTPStatusError as e:
            raise MapsServiceError(
                f"{endpoint} returned HTTP {e.response.status_code}",
                status=str(e.response.status_code),
            ) from e
        except httpx.HTTPError as e:
            raise MapsTransportError(f"{endpoint} request failed: {e}") from e
        except ValueError as e:
            raise MapsServiceError(f"{endpoint} returned invalid JSON") from e

        status = data.get("status", "OK")
        if status in _EMPTY_STATUSES:
            return None
        if status != "OK":
            raise MapsServiceError(
                data.get("error_message") or f"{endpoint} returned {status}",
                status=status,
            )
        return data

    async def geocode(self, address: str) -> GeocodeResult | None:
        """Resolve an address to its first geocoding result."""
        data = await self._request("geocode", {"address": address})
        results = data.get("results") if data else None
        if not results:
            return None

        first = results[0]
        coords = _parse_coordinates(first.get("geometry", {}).get("location"))
        if coords is None:
            return None
        return GeocodeResult(
            coordinates=coords,
            formatted_address=first.get("formatted_address", ""),
            place_id=first.get("place_id"),
        )

    async def nearest_place(self, origin: Coordinates, keyword: str) -> Place | None:
        """Find the place closest to ``origin`` matching ``keyword``."""
        data = await self._request(
            "place/nearbysearch",
            {"location": origin.as_param(), "keyword": keyword, "rankby": "distance"},
        )
        results = data.get("results") if data else None
        if not results:
            return None

        first = results[0]
        place_id = first.get("place_id")
        if not place_id:
            return None
        return Place(
            place_id=place_id,
            name=first.get("name", ""),
            coordinates=_parse_coordinates(first.get("geometry", {}).get("location")),
        )

    async def route_duration_seconds(
        self,
        origin: Coordinates,
        destination: str,
        mode: TravelMode,
        *,
        departure_time: datetime | None = None,
    ) -> int | None:
        """Duration of the first leg of the first route, in seconds.

        Prefers the traffic-aware duration, which the service only returns for
        driving requests that carry a departure time.

        Args:
            origin: Start point.
            destination: Literal address, or ``place_id:<id>``.
            mode: Travel mode.
            departure_time: Optional timezone-aware departure instant.
        """
        params = {
            "origin": origin.as_param(),
            "destination": destination,
            "mode": mode.api_value,
        }
        if departure_time is not None:
            params["departure_time"] = str(int(departure_time.timestamp()))

        data = await self._request("directions", params)
        routes = data.get("routes") if data else None
        if not routes or not routes[0].get("legs"):
            return None

        leg = routes[0]["legs"][0]
        for key in ("duration_in_traffic", "duration"):
            value = (leg.get(key) or {}).get("value")
            if value is not None:
                return int(value)
        return None
