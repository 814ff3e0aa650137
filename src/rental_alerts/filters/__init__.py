"""Filters deciding whether a listing matches a preference profile."""

from rental_alerts.filters.commute import LocationRuleEvaluator, next_departure
from rental_alerts.filters.criteria import CriteriaFilter, matches_numeric_filters
from rental_alerts.filters.matcher import PreferenceMatcher

__all__ = [
    "CriteriaFilter",
    "LocationRuleEvaluator",
    "PreferenceMatcher",
    "matches_numeric_filters",
    "next_departure",
]
