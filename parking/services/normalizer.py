"""
Normalization of loosely typed upstream records.

The upstream API is not consistent about field naming, so every logical
attribute maps to an ordered tuple of candidate keys; the first key whose
value is not null wins. Both entry points are total: any JSON-like input
yields either a model or ``None``.
"""

import math
from typing import Any

from parking.models import FacilityAvailability, FacilityMetadata

ID_FIELDS = ("id", "Id", "facilityId", "FacilityId")

FACILITY_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ID_FIELDS,
    "name": ("name", "Name", "siteName", "SiteName"),
    "lat": ("lat", "latitude", "Latitude"),
    "lon": ("lon", "longitude", "Longitude"),
    "position": ("position", "Position"),
    "capacity": ("capacity", "Capacity"),
    "tariff_note": ("tariffNote", "TariffNote"),
    "zone_code": ("zoneCode", "ZoneCode"),
    "source_url": ("sourceUrl", "SourceUrl", "url", "Url"),
}

# Candidate keys inside a nested "position" object
POSITION_FIELDS: dict[str, tuple[str, ...]] = {
    "lat": ("lat", "Lat", "latitude", "Latitude"),
    "lon": ("lon", "Lon", "longitude", "Longitude"),
}

AVAILABILITY_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ID_FIELDS,
    "free_spaces": ("freeSpaces", "FreeSpaces", "vacant", "Vacant"),
    "capacity": ("capacity", "Capacity"),
    "last_updated": (
        "lastUpdated",
        "LastUpdated",
        "updatedAt",
        "UpdatedAt",
        "timestamp",
        "Timestamp",
    ),
}


def pick(record: dict[str, Any], candidates: tuple[str, ...]) -> Any:
    """Return the first non-null value among ``candidates``."""
    for key in candidates:
        value = record.get(key)
        if value is not None:
            return value
    return None


def to_float(value: Any) -> float | None:
    """Coerce to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    if not isinstance(value, (str, int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> int | None:
    """Coerce to an integer; non-finite or fractional values become None."""
    number = to_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def to_str(value: Any) -> str | None:
    """Coerce scalars to a non-empty string, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            value = int(value)
    if not isinstance(value, (str, int, float)):
        return None
    text = str(value)
    return text if text else None


def normalize_facility(raw: Any, default_source_url: str) -> FacilityMetadata | None:
    """
    Map a raw facility record onto FacilityMetadata.

    Records without a usable id, name, latitude or longitude are dropped.
    Coordinates may sit at the top level or inside a ``position`` object.
    """
    if not isinstance(raw, dict):
        return None

    facility_id = to_str(pick(raw, FACILITY_FIELDS["id"]))
    name = to_str(pick(raw, FACILITY_FIELDS["name"]))

    lat_value = pick(raw, FACILITY_FIELDS["lat"])
    lon_value = pick(raw, FACILITY_FIELDS["lon"])
    position = pick(raw, FACILITY_FIELDS["position"])
    if isinstance(position, dict):
        if lat_value is None:
            lat_value = pick(position, POSITION_FIELDS["lat"])
        if lon_value is None:
            lon_value = pick(position, POSITION_FIELDS["lon"])

    lat = to_float(lat_value)
    lon = to_float(lon_value)
    if facility_id is None or name is None or lat is None or lon is None:
        return None

    capacity = to_int(pick(raw, FACILITY_FIELDS["capacity"]))
    if capacity is not None and capacity < 0:
        capacity = None

    return FacilityMetadata(
        id=facility_id,
        name=name,
        lat=lat,
        lon=lon,
        capacity=capacity,
        tariff_note=to_str(pick(raw, FACILITY_FIELDS["tariff_note"])),
        zone_code=to_str(pick(raw, FACILITY_FIELDS["zone_code"])),
        source_url=to_str(pick(raw, FACILITY_FIELDS["source_url"]))
        or default_source_url,
    )


def normalize_availability(raw: Any) -> FacilityAvailability | None:
    """Map a raw availability record; only a missing id drops it."""
    if not isinstance(raw, dict):
        return None

    facility_id = to_str(pick(raw, AVAILABILITY_FIELDS["id"]))
    if facility_id is None:
        return None

    return FacilityAvailability(
        id=facility_id,
        free_spaces=to_int(pick(raw, AVAILABILITY_FIELDS["free_spaces"])),
        capacity=to_int(pick(raw, AVAILABILITY_FIELDS["capacity"])),
        last_updated=to_str(pick(raw, AVAILABILITY_FIELDS["last_updated"])),
    )
