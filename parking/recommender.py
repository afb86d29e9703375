"""
Recommendation assembly: join facility metadata with live availability,
measure distance to the target and rank the nearby candidates.
"""

import asyncio
import json
from typing import Any, Awaitable, TypeVar

from loguru import logger
from pydantic import ValidationError

from parking.geo import estimate_walk_minutes, haversine_distance_meters
from parking.models import (
    AvailabilityResult,
    FacilityMetadata,
    FacilityRecommendation,
    RecommendFacilityArgs,
)
from parking.services.cache import AvailabilityCache, FacilityCache
from parking.services.cancellation import CancelSignal
from parking.services.errors import (
    InvalidInputError,
    RequestCancelledError,
    ServiceError,
    UpstreamServiceError,
)

T = TypeVar("T")

OVERALL_TIMEOUT_REASON = "Operation timed out"


def sort_recommendations(
    results: list[FacilityRecommendation],
) -> list[FacilityRecommendation]:
    """Nearest first; on equal distance, more free spaces first (unknown last)."""
    return sorted(
        results,
        key=lambda item: (
            item.distance_meters,
            -(item.free_spaces if item.free_spaces is not None else -1),
        ),
    )


def parse_args(raw_args: Any) -> RecommendFacilityArgs:
    try:
        return RecommendFacilityArgs.model_validate(raw_args)
    except ValidationError as e:
        raise InvalidInputError(json.loads(e.json(include_url=False))) from e


class ParkingRecommender:
    """
    Recommends nearby parking facilities.

    Usage:
        recommender = ParkingRecommender(facility_cache, availability_cache)
        results = await recommender.recommend_facility(
            {"userLat": 59.3293, "userLon": 18.0686}
        )
    """

    def __init__(
        self,
        facilities: FacilityCache,
        availability: AvailabilityCache,
        overall_timeout: float = 8.0,
        log=logger,
    ):
        self._facilities = facilities
        self._availability = availability
        self._overall_timeout = overall_timeout
        self._log = log

    async def recommend_facility(self, raw_args: Any) -> list[FacilityRecommendation]:
        """
        Recommend facilities around the destination (or the user).

        Args:
            raw_args: Untrusted arguments, camelCase keys

        Returns:
            At most ``maxResults`` recommendations within ``radiusMeters``

        Raises:
            InvalidInputError: If the arguments fail validation
            UpstreamServiceError: If facilities or availability cannot be loaded
            RequestCancelledError: If the overall deadline expires
        """
        try:
            args = parse_args(raw_args)
        except InvalidInputError as e:
            self._log.bind(errors=e.details).error("Input validation failed")
            raise

        deadline = CancelSignal.after(self._overall_timeout, OVERALL_TIMEOUT_REASON)
        try:
            facilities, availability = await asyncio.gather(
                self._guarded(
                    "facilities", self._facilities.get_facilities(deadline), deadline
                ),
                self._guarded(
                    "availability",
                    self._availability.get_availability(deadline),
                    deadline,
                ),
            )
        finally:
            deadline.dispose()

        # Each missing destination coordinate falls back to the user's own.
        target = (
            args.destination_lat if args.destination_lat is not None else args.user_lat,
            args.destination_lon if args.destination_lon is not None else args.user_lon,
        )

        enriched = [
            recommendation
            for recommendation in (
                self._build(facility, availability, target) for facility in facilities
            )
            if recommendation.distance_meters <= args.radius_meters
        ]
        limited = sort_recommendations(enriched)[: args.max_results]

        self._log.bind(count=len(limited), staleAvailability=availability.stale).info(
            f"Generated {len(limited)} facility recommendations"
        )
        return limited

    async def _guarded(
        self, service: str, work: Awaitable[T], deadline: CancelSignal
    ) -> T:
        """Translate a data-source failure; a failure aborts the sibling fetch."""
        try:
            return await work
        except RequestCancelledError:
            raise
        except ServiceError as e:
            deadline.cancel(f"{service} unavailable")
            raise UpstreamServiceError(service, e) from e

    @staticmethod
    def _build(
        facility: FacilityMetadata,
        availability: AvailabilityResult,
        target: tuple[float, float],
    ) -> FacilityRecommendation:
        live = availability.data.get(facility.id)
        capacity = facility.capacity
        if live is not None and live.capacity is not None:
            capacity = live.capacity
        distance = haversine_distance_meters(
            target[0], target[1], facility.lat, facility.lon
        )
        return FacilityRecommendation(
            id=facility.id,
            name=facility.name,
            lat=facility.lat,
            lon=facility.lon,
            free_spaces=live.free_spaces if live else None,
            capacity=capacity,
            tariff_note=facility.tariff_note,
            zone_code=facility.zone_code,
            distance_meters=distance,
            walk_minutes=estimate_walk_minutes(distance),
            last_updated=live.last_updated if live else None,
            stale=availability.stale,
            source_url=facility.source_url,
        )
