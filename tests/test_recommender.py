import asyncio
from datetime import timedelta

import pytest

from parking.models import AvailabilityResult, FacilityRecommendation
from parking.recommender import ParkingRecommender, sort_recommendations
from parking.services.cache import AvailabilityCache, FacilityCache
from parking.services.errors import (
    InvalidInputError,
    RequestCancelledError,
    UpstreamHardError,
    UpstreamServiceError,
)
from tests.fakes import AVAILABILITY_URL, FACILITIES_URL, RoutingFetcher

STOCKHOLM = {"userLat": 59.3293, "userLon": 18.0686}


def recommendation(facility_id: str, distance: int = 0, free_spaces: int | None = None):
    return FacilityRecommendation(
        id=facility_id,
        name="Facility",
        lat=0,
        lon=0,
        free_spaces=free_spaces,
        distance_meters=distance,
        walk_minutes=0,
        source_url="https://example.com",
    )


def build_recommender(fetcher, clock, overall_timeout: float = 8.0) -> ParkingRecommender:
    return ParkingRecommender(
        FacilityCache(fetcher, FACILITIES_URL, clock=clock),
        AvailabilityCache(fetcher, AVAILABILITY_URL, ttl=timedelta(seconds=60), clock=clock),
        overall_timeout=overall_timeout,
    )


def test_sort_recommendations_by_distance() -> None:
    items = sort_recommendations(
        [recommendation("b", 200), recommendation("a", 100), recommendation("c", 300)]
    )

    assert [item.id for item in items] == ["a", "b", "c"]


def test_sort_recommendations_by_free_spaces_when_distance_equal() -> None:
    items = sort_recommendations(
        [
            recommendation("a", 100, 2),
            recommendation("b", 100, 5),
            recommendation("c", 100, None),
        ]
    )

    assert [item.id for item in items] == ["b", "a", "c"]


def test_sort_recommendations_ranks_zero_free_spaces_above_unknown() -> None:
    items = sort_recommendations(
        [recommendation("unknown", 100, None), recommendation("full", 100, 0)]
    )

    assert [item.id for item in items] == ["full", "unknown"]


@pytest.mark.asyncio
async def test_recommend_joins_metadata_with_availability(
    clock, facility_payload, availability_payload
) -> None:
    fetcher = RoutingFetcher(
        {FACILITIES_URL: facility_payload, AVAILABILITY_URL: availability_payload}
    )
    recommender = build_recommender(fetcher, clock)

    results = await recommender.recommend_facility(STOCKHOLM)

    assert [r.id for r in results] == ["gallerian", "city"]
    city = results[1]
    assert city.free_spaces == 12
    assert city.capacity == 410
    assert city.tariff_note == "45 kr/h"
    assert city.last_updated == "2024-05-01T10:00:00Z"
    assert 400 < city.distance_meters < 600
    assert city.walk_minutes == -(-city.distance_meters // 80)
    assert city.stale is False
    assert city.source_url == FACILITIES_URL

    gallerian = results[0]
    assert gallerian.free_spaces == 40
    assert gallerian.capacity == 250


@pytest.mark.asyncio
async def test_recommend_respects_radius_and_max_results(
    clock, facility_payload, availability_payload
) -> None:
    fetcher = RoutingFetcher(
        {FACILITIES_URL: facility_payload, AVAILABILITY_URL: availability_payload}
    )
    recommender = build_recommender(fetcher, clock)

    wide = await recommender.recommend_facility({**STOCKHOLM, "radiusMeters": 5000})
    limited = await recommender.recommend_facility(
        {**STOCKHOLM, "radiusMeters": 5000, "maxResults": 1}
    )

    assert [r.id for r in wide] == ["gallerian", "city"]
    assert [r.id for r in limited] == ["gallerian"]


@pytest.mark.asyncio
async def test_recommend_measures_from_destination_when_given(
    clock, facility_payload
) -> None:
    fetcher = RoutingFetcher({FACILITIES_URL: facility_payload, AVAILABILITY_URL: []})
    recommender = build_recommender(fetcher, clock)

    results = await recommender.recommend_facility(
        {
            "userLat": 0.0,
            "userLon": 0.0,
            "destinationLat": 59.40,
            "destinationLon": 18.20,
            "radiusMeters": 100,
        }
    )

    assert [r.id for r in results] == ["far"]
    assert results[0].distance_meters == 0
    assert results[0].free_spaces is None
    assert results[0].capacity is None


@pytest.mark.asyncio
async def test_recommend_falls_back_per_coordinate_for_partial_destination(
    clock, facility_payload
) -> None:
    fetcher = RoutingFetcher({FACILITIES_URL: facility_payload, AVAILABILITY_URL: []})
    recommender = build_recommender(fetcher, clock)

    results = await recommender.recommend_facility(
        {"userLat": 0.0, "userLon": 18.20, "destinationLat": 59.40, "radiusMeters": 100}
    )

    assert [r.id for r in results] == ["far"]
    assert results[0].distance_meters == 0


@pytest.mark.asyncio
async def test_recommend_accepts_integer_coordinates(clock, facility_payload) -> None:
    fetcher = RoutingFetcher({FACILITIES_URL: facility_payload, AVAILABILITY_URL: []})
    recommender = build_recommender(fetcher, clock)

    results = await recommender.recommend_facility({"userLat": 0, "userLon": 0})

    assert results == []


@pytest.mark.asyncio
async def test_recommend_marks_results_stale_when_availability_is_stale(
    clock, facility_payload, availability_payload
) -> None:
    fetcher = RoutingFetcher(
        {FACILITIES_URL: facility_payload, AVAILABILITY_URL: availability_payload}
    )
    recommender = build_recommender(fetcher, clock)
    await recommender.recommend_facility(STOCKHOLM)

    clock.advance(61)
    results = await recommender.recommend_facility(STOCKHOLM)

    assert results and all(r.stale for r in results)


@pytest.mark.parametrize(
    "args",
    [
        {"userLat": 91, "userLon": 18},
        {"userLon": 18},
        {**STOCKHOLM, "radiusMeters": 50},
        {**STOCKHOLM, "maxResults": 11},
        {**STOCKHOLM, "unexpected": True},
        {"userLat": "59.3", "userLon": 18.0},
        {**STOCKHOLM, "radiusMeters": "1500"},
        {**STOCKHOLM, "maxResults": 2.0},
        {"userLat": True, "userLon": 18.0},
        "not an object",
    ],
)
@pytest.mark.asyncio
async def test_recommend_rejects_invalid_input(clock, args) -> None:
    fetcher = RoutingFetcher({})
    recommender = build_recommender(fetcher, clock)

    with pytest.raises(InvalidInputError) as exc_info:
        await recommender.recommend_facility(args)

    assert exc_info.value.details
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_recommend_wraps_facility_failures(clock) -> None:
    fetcher = RoutingFetcher(
        {
            FACILITIES_URL: UpstreamHardError(FACILITIES_URL, 500, "down"),
            AVAILABILITY_URL: [],
        }
    )
    recommender = build_recommender(fetcher, clock)

    with pytest.raises(UpstreamServiceError) as exc_info:
        await recommender.recommend_facility(STOCKHOLM)

    assert exc_info.value.service == "facilities"
    assert isinstance(exc_info.value.cause, UpstreamHardError)


@pytest.mark.asyncio
async def test_recommend_times_out_with_overall_deadline(clock) -> None:
    class SlowFetcher:
        async def fetch(self, url, signal=None):
            return await signal.guard(asyncio.sleep(5, result=[]))

    recommender = build_recommender(SlowFetcher(), clock, overall_timeout=0.05)

    with pytest.raises(RequestCancelledError) as exc_info:
        await recommender.recommend_facility(STOCKHOLM)

    assert exc_info.value.reason == "Operation timed out"


def test_availability_result_defaults_to_fresh() -> None:
    assert AvailabilityResult(data={}).stale is False
