"""Decide whether a listing matches a user's preference profile."""

from rental_alerts.filters.commute import LocationRuleEvaluator
from rental_alerts.filters.criteria import matches_numeric_filters
from rental_alerts.logging import get_logger
from rental_alerts.models import (
    Listing,
    MatchedRule,
    MatchResult,
    RuleEvaluation,
    UserPreferences,
)
from rental_alerts.utils.geocoder import GeocodeResolver

logger = get_logger(__name__)

NO_MATCH = MatchResult(is_match=False)


class PreferenceMatcher:
    """Combine numeric filters with location rules for a (listing, profile) pair."""

    def __init__(self, geocoder: GeocodeResolver, evaluator: LocationRuleEvaluator) -> None:
        self.geocoder = geocoder
        self.evaluator = evaluator

    async def ensure_coordinates(self, listing: Listing) -> Listing | None:
        """Return the listing with coordinates, geocoding its address if needed.

        Returns:
            The listing (unchanged if it already had coordinates), or None if
            its address could not be resolved.
        """
        if listing.coordinates is not None:
            return listing

        address = listing.full_address
        if not address:
            logger.warning("listing_without_address", listing_id=listing.id)
            return None

        result = await self.geocoder.resolve(address)
        if result is None:
            logger.warning("listing_coordinates_not_found", listing_id=listing.id, address=address)
            return None
        return listing.with_coordinates(result.coordinates)

    async def evaluate_rules(
        self, listing: Listing, preferences: UserPreferences
    ) -> list[RuleEvaluation]:
        """Evaluate every location rule in order (no short-circuit).

        The listing must already have coordinates.
        """
        origin = listing.coordinates
        if origin is None:
            raise ValueError(f"Listing {listing.id} has no coordinates")
        return [await self.evaluator.evaluate(origin, rule) for rule in preferences.locations]

    async def matches(self, listing: Listing, preferences: UserPreferences) -> MatchResult:
        """Check a listing against a profile.

        Location rules are only evaluated once the cheap numeric gate passes.
        Diagnostics list every rule that produced a travel time, including
        near-misses; a rule that produced none still forces a non-match.
        """
        if not matches_numeric_filters(listing, preferences):
            return NO_MATCH

        if not preferences.locations:
            return MatchResult(is_match=True)

        located = await self.ensure_coordinates(listing)
        if located is None:
            logger.info(
                "match_indeterminate",
                listing_id=listing.id,
                user_id=preferences.user_id,
                reason="no_coordinates",
            )
            return NO_MATCH

        evaluations = await self.evaluate_rules(located, preferences)
        matched_rules = tuple(
            MatchedRule(rule=e.rule, actual_duration=e.duration_minutes)
            for e in evaluations
            if e.duration_minutes is not None
        )
        is_match = all(e.passed for e in evaluations)

        logger.debug(
            "match_evaluated",
            listing_id=listing.id,
            user_id=preferences.user_id,
            is_match=is_match,
            rules=len(evaluations),
            failures=[e.failure.value for e in evaluations if e.failure is not None],
        )
        return MatchResult(is_match=is_match, matched_rules=matched_rules)
