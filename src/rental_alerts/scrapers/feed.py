"""Listing source backed by a JSON export file."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rental_alerts.logging import get_logger
from rental_alerts.models import Listing
from rental_alerts.scrapers.base import ListingSource

logger = get_logger(__name__)


class JsonFeedSource(ListingSource):
    """Read listings exported by an external scraper.

    The file holds either a JSON array of listing objects or an object with a
    ``listings`` array. Entries that fail validation are logged and skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._by_url: dict[str, Listing] | None = None

    @property
    def name(self) -> str:
        return f"feed:{self.path.name}"

    def _load(self) -> dict[str, Listing]:
        if self._by_url is not None:
            return self._by_url

        if not self.path.exists():
            logger.warning("listing_feed_missing", path=str(self.path))
            self._by_url = {}
            return self._by_url

        raw: Any = json.loads(self.path.read_text(encoding="utf-8"))
        entries = raw.get("listings", []) if isinstance(raw, dict) else raw

        listings: dict[str, Listing] = {}
        for index, entry in enumerate(entries):
            try:
                listing = Listing.model_validate(entry)
            except ValidationError as e:
                logger.warning(
                    "listing_feed_entry_invalid",
                    index=index,
                    errors=e.error_count(),
                )
                continue
            listings.setdefault(str(listing.url), listing)

        logger.info("listing_feed_loaded", path=str(self.path), count=len(listings))
        self._by_url = listings
        return listings

    async def fetch_recent_urls(self) -> list[str]:
        listings = self._load()
        ordered = sorted(listings.values(), key=lambda lst: lst.created_at, reverse=True)
        return [str(lst.url) for lst in ordered]

    async def fetch_listing(self, url: str) -> Listing | None:
        return self._load().get(url)
