"""Listing source interface.

A source discovers recently published listing URLs and turns each one into a
:class:`Listing`. How it gets there (HTML scraping, an export file, a partner
API) is up to the implementation.
"""

from abc import ABC, abstractmethod

from rental_alerts.models import Listing


class ListingSource(ABC):
    """Abstract base class for listing sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs."""
        ...

    @abstractmethod
    async def fetch_recent_urls(self) -> list[str]:
        """Return URLs of recently published listings, newest first."""
        ...

    @abstractmethod
    async def fetch_listing(self, url: str) -> Listing | None:
        """Fetch the details of one listing.

        Returns:
            The listing, or None if its details could not be extracted.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by the source."""
