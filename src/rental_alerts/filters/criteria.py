"""Numeric preference filters (price ranges, rooms, parking)."""

from rental_alerts.logging import get_logger
from rental_alerts.models import Listing, UserPreferences

logger = get_logger(__name__)


def matches_numeric_filters(listing: Listing, preferences: UserPreferences) -> bool:
    """Check rent, condo fee, bedrooms and parking against a profile.

    Missing listing values count as zero, so a listing with no condo fee
    passes any condo range that starts at zero.
    """
    rent = listing.rent or 0
    condo = listing.condo_fee or 0
    min_rent, max_rent = preferences.price.rent
    min_condo, max_condo = preferences.price.condo

    return (
        min_rent <= rent <= max_rent
        and min_condo <= condo <= max_condo
        and (listing.bedrooms or 0) >= preferences.bedrooms
        and (listing.parking_spots or 0) >= preferences.parking_spots
    )


class CriteriaFilter:
    """Filter listings by a profile's numeric criteria."""

    def __init__(self, preferences: UserPreferences) -> None:
        """Initialize the criteria filter.

        Args:
            preferences: Profile whose numeric filters are applied.
        """
        self.preferences = preferences

    def filter_listings(self, listings: list[Listing]) -> list[Listing]:
        """Keep listings that pass the numeric gate.

        Args:
            listings: Listings to filter.

        Returns:
            Listings matching the profile's numeric criteria.
        """
        matching = [lst for lst in listings if matches_numeric_filters(lst, self.preferences)]

        logger.info(
            "criteria_filter_complete",
            user_id=self.preferences.user_id,
            total_listings=len(listings),
            matching=len(matching),
            rent_range=self.preferences.price.rent,
            condo_range=self.preferences.price.condo,
            min_bedrooms=self.preferences.bedrooms,
            min_parking=self.preferences.parking_spots,
        )

        return matching
