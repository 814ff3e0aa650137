"""Travel-time evaluation of location rules using Google Maps."""

import math
from collections.abc import Callable
from datetime import UTC, datetime, time, timedelta, tzinfo

from rental_alerts.logging import get_logger
from rental_alerts.models import (
    Coordinates,
    LocationRule,
    RuleEvaluation,
    RuleFailure,
    RuleKind,
    TravelMode,
)
from rental_alerts.utils.maps_client import (
    GoogleMapsClient,
    MapsServiceError,
    MapsTransportError,
)

logger = get_logger(__name__)

_SATURDAY = 5


def next_departure(departure: time, *, now: datetime, tz: tzinfo) -> datetime:
    """Next weekday occurrence of a wall-clock departure time.

    Takes the next future occurrence of ``departure`` in ``tz``; a result that
    falls on Saturday or Sunday moves to the following Monday.

    Args:
        departure: Time of day (any tzinfo on it is ignored).
        now: Current instant, timezone-aware.
        tz: Timezone the departure time is expressed in.
    """
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), departure.replace(tzinfo=None), tzinfo=tz)
    if candidate <= local_now:
        candidate += timedelta(days=1)
    if candidate.weekday() >= _SATURDAY:
        candidate += timedelta(days=7 - candidate.weekday())
    return candidate


def seconds_to_minutes(seconds: int) -> int:
    """Round a duration up to whole minutes."""
    return math.ceil(seconds / 60)


class LocationRuleEvaluator:
    """Compute the travel time a location rule asks about."""

    def __init__(
        self,
        maps: GoogleMapsClient,
        *,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """Initialize the evaluator.

        Args:
            maps: Maps client used for place and route lookups.
            tz: Timezone rule departure times are expressed in.
            clock: Source of the current instant, injectable for tests.
        """
        self.maps = maps
        self.tz = tz
        self.clock = clock

    def departure_for(self, rule: LocationRule) -> datetime | None:
        """Departure instant to send with the route query, if any.

        Only driving rules with a departure time get one; traffic estimates
        are meaningless for the other modes.
        """
        if rule.travel_mode != TravelMode.DRIVING or rule.departure_time is None:
            return None
        return next_departure(rule.departure_time, now=self.clock(), tz=self.tz)

    async def evaluate(self, origin: Coordinates, rule: LocationRule) -> RuleEvaluation:
        """Evaluate one rule from one origin.

        Never raises for service problems; they are reported as a failed
        evaluation so the caller can keep going.
        """
        try:
            destination = await self._resolve_destination(origin, rule)
            if destination is None:
                logger.info("rule_place_not_found", rule_id=rule.id, keyword=rule.target)
                return RuleEvaluation(rule=rule, failure=RuleFailure.PLACE_NOT_FOUND)

            seconds = await self.maps.route_duration_seconds(
                origin,
                destination,
                rule.travel_mode,
                departure_time=self.departure_for(rule),
            )
        except MapsTransportError as e:
            logger.warning("rule_transport_error", rule_id=rule.id, error=str(e))
            return RuleEvaluation(rule=rule, failure=RuleFailure.TRANSPORT_ERROR)
        except MapsServiceError as e:
            logger.error("rule_maps_error", rule_id=rule.id, status=e.status, error=str(e))
            return RuleEvaluation(rule=rule, failure=RuleFailure.TRANSPORT_ERROR)

        if seconds is None:
            logger.info("rule_route_not_found", rule_id=rule.id, destination=destination)
            return RuleEvaluation(rule=rule, failure=RuleFailure.ROUTE_NOT_FOUND)

        minutes = seconds_to_minutes(seconds)
        evaluation = RuleEvaluation(rule=rule, duration_minutes=minutes)
        logger.debug(
            "rule_evaluated",
            rule_id=rule.id,
            kind=rule.kind.value,
            mode=rule.travel_mode.value,
            duration_minutes=minutes,
            max_time=rule.max_time,
            passed=evaluation.passed,
        )
        return evaluation

    async def _resolve_destination(self, origin: Coordinates, rule: LocationRule) -> str | None:
        if rule.kind == RuleKind.SPECIFIC:
            return rule.target

        place = await self.maps.nearest_place(origin, rule.target)
        if place is None:
            return None
        return f"place_id:{place.place_id}"
