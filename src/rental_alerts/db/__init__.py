"""Database storage for listings, profiles and notifications."""

from rental_alerts.db.storage import ListingStorage

__all__ = ["ListingStorage"]
