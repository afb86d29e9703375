"""
Data models for facility metadata, live availability and recommendations.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FacilityMetadata(BaseModel):
    """Normalized, slowly changing facility description."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    lat: float
    lon: float
    capacity: int | None = None
    tariff_note: str | None = None
    zone_code: str | None = None
    source_url: str


class FacilityAvailability(BaseModel):
    """Normalized live occupancy for one facility."""

    model_config = ConfigDict(frozen=True)

    id: str
    free_spaces: int | None = None
    capacity: int | None = None
    last_updated: str | None = None  # passed through verbatim


@dataclass(frozen=True)
class AvailabilityResult:
    """Availability snapshot handed to callers of the availability cache."""

    data: Mapping[str, FacilityAvailability]
    stale: bool = False


class RecommendFacilityArgs(BaseModel):
    """Arguments accepted by the recommendation endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        strict=True,
    )

    user_lat: float = Field(ge=-90, le=90)
    user_lon: float = Field(ge=-180, le=180)
    destination_lat: float | None = Field(default=None, ge=-90, le=90)
    destination_lon: float | None = Field(default=None, ge=-180, le=180)
    radius_meters: int = Field(default=1500, ge=100, le=5000)
    max_results: int = Field(default=5, ge=1, le=10)


class FacilityRecommendation(BaseModel):
    """A facility joined with its availability and distance to the target."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    lat: float
    lon: float
    free_spaces: int | None = None
    capacity: int | None = None
    tariff_note: str | None = None
    zone_code: str | None = None
    distance_meters: int
    walk_minutes: int
    last_updated: str | None = None
    stale: bool = False
    source_url: str
