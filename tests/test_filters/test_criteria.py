"""Tests for numeric criteria filtering."""

import pytest
from pydantic import HttpUrl

from rental_alerts.filters.criteria import CriteriaFilter, matches_numeric_filters
from rental_alerts.models import Listing, PriceFilters, UserPreferences


def _listing(listing_id: str = "1", **overrides: object) -> Listing:
    fields: dict[str, object] = {
        "id": listing_id,
        "url": HttpUrl(f"https://example.com/imovel/{listing_id}"),
        "rent": 1200,
        "condo_fee": 100,
        "bedrooms": 2,
        "parking_spots": 1,
    }
    fields.update(overrides)
    return Listing.model_validate(fields)


@pytest.fixture
def preferences() -> UserPreferences:
    return UserPreferences(
        user_id="user-1",
        price=PriceFilters(rent=(1000, 1500), condo=(0, 200)),
        bedrooms=2,
        parking_spots=1,
    )


class TestMatchesNumericFilters:
    def test_listing_within_all_bounds(self, preferences: UserPreferences) -> None:
        assert matches_numeric_filters(_listing(), preferences)

    @pytest.mark.parametrize("rent", [1000, 1500])
    def test_rent_bounds_are_inclusive(self, preferences: UserPreferences, rent: int) -> None:
        assert matches_numeric_filters(_listing(rent=rent), preferences)

    @pytest.mark.parametrize("rent", [999, 1501])
    def test_rent_outside_range(self, preferences: UserPreferences, rent: int) -> None:
        assert not matches_numeric_filters(_listing(rent=rent), preferences)

    def test_condo_above_range(self, preferences: UserPreferences) -> None:
        assert not matches_numeric_filters(_listing(condo_fee=250), preferences)

    def test_too_few_bedrooms(self, preferences: UserPreferences) -> None:
        assert not matches_numeric_filters(_listing(bedrooms=1), preferences)

    def test_more_bedrooms_than_minimum(self, preferences: UserPreferences) -> None:
        assert matches_numeric_filters(_listing(bedrooms=4), preferences)

    def test_too_few_parking_spots(self, preferences: UserPreferences) -> None:
        assert not matches_numeric_filters(_listing(parking_spots=0), preferences)

    def test_missing_condo_counts_as_zero(self, preferences: UserPreferences) -> None:
        assert matches_numeric_filters(_listing(condo_fee=None), preferences)

    def test_missing_rent_fails_range_above_zero(self, preferences: UserPreferences) -> None:
        assert not matches_numeric_filters(_listing(rent=None), preferences)

    def test_missing_bedrooms_fails_positive_minimum(self, preferences: UserPreferences) -> None:
        assert not matches_numeric_filters(_listing(bedrooms=None), preferences)

    def test_default_condo_range_requires_no_fee(self) -> None:
        prefs = UserPreferences(user_id="u", price=PriceFilters(rent=(0, 5000)))
        assert matches_numeric_filters(_listing(condo_fee=None), prefs)
        assert not matches_numeric_filters(_listing(condo_fee=50), prefs)

    def test_bathrooms_and_amenities_do_not_filter(self, preferences: UserPreferences) -> None:
        prefs = preferences.model_copy(
            update={"bathrooms": 5, "amenities": frozenset({"piscina"})}
        )
        assert matches_numeric_filters(_listing(), prefs)


class TestCriteriaFilter:
    def test_filter_listings(self, preferences: UserPreferences) -> None:
        listings = [
            _listing("ok"),
            _listing("expensive", rent=3000),
            _listing("small", bedrooms=1),
            _listing("ok-too", rent=1400, parking_spots=2),
        ]

        result = CriteriaFilter(preferences).filter_listings(listings)

        assert [lst.id for lst in result] == ["ok", "ok-too"]

    def test_empty_input(self, preferences: UserPreferences) -> None:
        assert CriteriaFilter(preferences).filter_listings([]) == []
