"""Pydantic models for listings, preferences, location rules and notifications."""

from datetime import UTC, datetime, time
from enum import StrEnum
from typing import Any, Final, Self
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class TravelMode(StrEnum):
    """Travel modes supported by location rules."""

    DRIVING = "driving"
    WALKING = "walking"
    CYCLING = "cycling"

    @property
    def api_value(self) -> str:
        """Mode name expected by the routing service."""
        return _ROUTING_MODES[self.value]


_ROUTING_MODES: Final[dict[str, str]] = {
    "driving": "driving",
    "walking": "walking",
    "cycling": "bicycling",
}

# Older stored profiles use the routing service's own upper-case names
_LEGACY_MODE_NAMES: Final[dict[str, str]] = {"bicycling": "cycling"}


class RuleKind(StrEnum):
    """How a location rule's target is resolved to a destination."""

    GENERIC = "generic"  # category keyword, nearest matching place
    SPECIFIC = "specific"  # literal destination address


class Coordinates(BaseModel):
    """A point on the map."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    def as_param(self) -> str:
        """Format as the ``lat,lng`` string used in maps query parameters."""
        return f"{self.latitude},{self.longitude}"


class GeocodeResult(BaseModel):
    """A resolved address."""

    model_config = ConfigDict(frozen=True)

    coordinates: Coordinates
    formatted_address: str = ""
    place_id: str | None = None


class Place(BaseModel):
    """A candidate returned by the nearest-place lookup."""

    model_config = ConfigDict(frozen=True)

    place_id: str
    name: str = ""
    coordinates: Coordinates | None = None


class Listing(BaseModel):
    """A rental listing produced by ingestion."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Identifier assigned by the listing site")
    url: HttpUrl
    kind: str | None = Field(default=None, description="Property type, e.g. apartment")
    street: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    rent: float | None = Field(default=None, ge=0)
    condo_fee: float | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    suites: int | None = Field(default=None, ge=0)
    parking_spots: int | None = Field(default=None, ge=0)
    area_sqm: float | None = Field(default=None, ge=0)
    description: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    images: tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("created_at")
    @classmethod
    def created_at_in_utc(cls, v: datetime) -> datetime:
        """Read naive timestamps as UTC and store every timestamp in UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @model_validator(mode="after")
    def check_coordinates(self) -> Self:
        """Ensure both lat and lon are present or both are absent."""
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("Both latitude and longitude must be provided, or neither")
        return self

    @property
    def coordinates(self) -> Coordinates | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    @property
    def full_address(self) -> str:
        """Street, neighborhood and city joined for geocoding."""
        parts = (self.street, self.neighborhood, self.city)
        return ", ".join(p.strip() for p in parts if p and p.strip())

    def with_coordinates(self, coords: Coordinates) -> "Listing":
        return self.model_copy(update={"latitude": coords.latitude, "longitude": coords.longitude})


class _CamelModel(BaseModel):
    """Accepts the camelCase keys used by stored preference documents."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class LocationRule(_CamelModel):
    """A maximum travel time from a listing to a destination."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: RuleKind = Field(alias="type")
    target: str = Field(min_length=1)
    max_time: int = Field(ge=1, description="Maximum travel time in minutes")
    travel_mode: TravelMode = TravelMode.DRIVING
    departure_time: time | None = Field(
        default=None, description="Time of day to leave, only honoured when driving"
    )

    @field_validator("travel_mode", mode="before")
    @classmethod
    def normalize_travel_mode(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, TravelMode):
            name = v.strip().lower()
            return _LEGACY_MODE_NAMES.get(name, name)
        return v

    @field_validator("departure_time", mode="before")
    @classmethod
    def empty_departure_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


def _check_range(bounds: tuple[float, float], name: str) -> tuple[float, float]:
    low, high = bounds
    if low > high:
        raise ValueError(f"{name} minimum must be <= maximum")
    return bounds


class PriceFilters(_CamelModel):
    """Inclusive monthly price ranges."""

    rent: tuple[float, float]
    condo: tuple[float, float] = (0, 0)

    @field_validator("rent")
    @classmethod
    def check_rent(cls, v: tuple[float, float]) -> tuple[float, float]:
        return _check_range(v, "rent")

    @field_validator("condo")
    @classmethod
    def check_condo(cls, v: tuple[float, float]) -> tuple[float, float]:
        return _check_range(v, "condo")


class UserPreferences(_CamelModel):
    """A user's active search profile."""

    user_id: str
    price: PriceFilters
    bedrooms: int = Field(default=0, ge=0, description="Minimum bedrooms")
    bathrooms: int = Field(default=0, ge=0)
    parking_spots: int = Field(default=0, ge=0, description="Minimum parking spots")
    amenities: frozenset[str] = frozenset()
    locations: tuple[LocationRule, ...] = ()

    def filters_document(self) -> dict[str, Any]:
        """Serialise everything except the owner, in the stored camelCase shape."""
        return self.model_dump(mode="json", by_alias=True, exclude={"user_id"})


class UserContact(BaseModel):
    """Contact profile used to address notifications."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    phone_number: str | None = None


class NotificationStatus(StrEnum):
    """Delivery state of a queued notification."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (NotificationStatus.SENT, NotificationStatus.FAILED)


class NotificationRecord(BaseModel):
    """One queued notification for a (user, listing) pair."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    listing_id: str
    status: NotificationStatus = NotificationStatus.PENDING
    attempts: int = 0
    created_at: datetime
    updated_at: datetime


class ClaimedNotification(BaseModel):
    """A claimed record joined with its listing and recipient contact."""

    model_config = ConfigDict(frozen=True)

    record: NotificationRecord
    claim_token: str
    listing: Listing | None = None
    phone_number: str | None = None


class RuleFailure(StrEnum):
    """Why a location rule produced no travel duration."""

    GEOCODE_FAILURE = "geocode_failure"
    PLACE_NOT_FOUND = "place_not_found"
    ROUTE_NOT_FOUND = "route_not_found"
    TRANSPORT_ERROR = "transport_error"


class DeliveryFailure(StrEnum):
    """Why a notification ended in the failed state."""

    INCOMPLETE_DATA = "incomplete_data"
    SEND_FAILURE = "send_failure"


class RuleEvaluation(BaseModel):
    """Outcome of evaluating one location rule for one origin."""

    model_config = ConfigDict(frozen=True)

    rule: LocationRule
    duration_minutes: int | None = None
    failure: RuleFailure | None = None

    @property
    def passed(self) -> bool:
        return self.duration_minutes is not None and self.duration_minutes <= self.rule.max_time


class MatchedRule(BaseModel):
    """Per-rule diagnostic: the travel time actually found."""

    model_config = ConfigDict(frozen=True)

    rule: LocationRule
    actual_duration: int


class MatchResult(BaseModel):
    """Verdict for a (listing, preferences) pair."""

    model_config = ConfigDict(frozen=True)

    is_match: bool
    matched_rules: tuple[MatchedRule, ...] = ()


class EnqueueResult(StrEnum):
    """Outcome of queueing a notification."""

    ENQUEUED = "enqueued"
    ALREADY_QUEUED = "already_queued"
