"""Application configuration using pydantic-settings."""

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RENTAL_ALERTS_",
        extra="ignore",
    )

    # Google Maps web services (geocoding, places, directions)
    google_maps_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Google Maps API key with Geocoding, Places and Directions enabled",
    )
    maps_timeout_seconds: float = Field(default=10.0, gt=0)

    # WhatsApp delivery bridge
    whatsapp_bridge_url: str = Field(
        default="",
        description="Base URL of the WhatsApp bridge (POST {url}/api/send)",
    )
    bridge_timeout_seconds: float = Field(default=15.0, gt=0)

    # Departure-time scheduling for driving rules
    timezone: str = Field(
        default="America/Sao_Paulo",
        description="IANA timezone used to interpret rule departure times",
    )

    # Notification dispatch
    dispatch_batch_size: int = Field(default=10, ge=1, le=500)
    max_delivery_attempts: int = Field(
        default=1,
        ge=1,
        description="Delivery attempts per notification (1 = never retry a failed send)",
    )
    claim_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes before an unfinished claim is released back to pending",
    )

    # Matching
    match_concurrency: int = Field(
        default=4,
        ge=1,
        le=50,
        description="Maximum (listing, profile) evaluations in flight at once",
    )
    geocode_cache_max_entries: int = Field(
        default=0,
        ge=0,
        description="Maximum cached geocode results (0 = unbounded)",
    )
    geocode_cache_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Geocode cache entry lifetime in seconds (0 = never expire)",
    )

    # Ingestion
    listing_feed_path: str = Field(
        default="data/listings.json",
        description="JSON export of scraped listings consumed by the pipeline",
    )
    ingest_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Pause between successive listing detail fetches",
    )

    # Database
    database_path: str = Field(default="data/rental_alerts.db")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names at load time."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("whatsapp_bridge_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def data_dir(self) -> str:
        """Return the directory containing the database."""
        return str(Path(self.database_path).parent)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
