"""Listing sources."""

from rental_alerts.scrapers.base import ListingSource
from rental_alerts.scrapers.feed import JsonFeedSource

__all__ = ["JsonFeedSource", "ListingSource"]
