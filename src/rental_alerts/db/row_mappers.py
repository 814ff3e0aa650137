"""Row <-> model mapping for the SQLite store."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Final

import aiosqlite
from pydantic import ValidationError

from rental_alerts.logging import get_logger
from rental_alerts.models import (
    Listing,
    NotificationRecord,
    NotificationStatus,
    UserPreferences,
)

logger = get_logger(__name__)

LISTING_COLUMNS: Final = (
    "id",
    "url",
    "kind",
    "street",
    "neighborhood",
    "city",
    "rent",
    "condo_fee",
    "bedrooms",
    "suites",
    "parking_spots",
    "area_sqm",
    "description",
    "latitude",
    "longitude",
    "images",
    "created_at",
)


def build_listing_insert(listing: Listing) -> tuple[tuple[str, ...], tuple[Any, ...]]:
    """Column names and values for inserting a listing."""
    values = (
        listing.id,
        str(listing.url),
        listing.kind,
        listing.street,
        listing.neighborhood,
        listing.city,
        listing.rent,
        listing.condo_fee,
        listing.bedrooms,
        listing.suites,
        listing.parking_spots,
        listing.area_sqm,
        listing.description,
        listing.latitude,
        listing.longitude,
        json.dumps(list(listing.images)) if listing.images else None,
        listing.created_at.isoformat(),
    )
    return LISTING_COLUMNS, values


def row_to_listing(row: aiosqlite.Row) -> Listing:
    """Convert a ``listings`` row to a Listing."""
    images: list[str] = []
    if row["images"]:
        try:
            images = json.loads(row["images"])
        except json.JSONDecodeError:
            logger.warning("listing_images_unreadable", listing_id=row["id"])

    return Listing(
        id=row["id"],
        url=row["url"],
        kind=row["kind"],
        street=row["street"],
        neighborhood=row["neighborhood"],
        city=row["city"],
        rent=row["rent"],
        condo_fee=row["condo_fee"],
        bedrooms=row["bedrooms"],
        suites=row["suites"],
        parking_spots=row["parking_spots"],
        area_sqm=row["area_sqm"],
        description=row["description"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        images=tuple(images),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def row_to_preferences(row: aiosqlite.Row) -> UserPreferences | None:
    """Convert a ``preferences`` row, or None if its filters document is unusable."""
    try:
        filters = json.loads(row["filters"])
        return UserPreferences.model_validate({**filters, "userId": row["user_id"]})
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.warning("preferences_unreadable", user_id=row["user_id"], error=str(e))
        return None


def row_to_notification(row: aiosqlite.Row) -> NotificationRecord:
    """Convert a ``notifications`` row to a NotificationRecord."""
    return NotificationRecord(
        id=row["id"],
        user_id=row["user_id"],
        listing_id=row["listing_id"],
        status=NotificationStatus(row["status"]),
        attempts=row["attempts"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
