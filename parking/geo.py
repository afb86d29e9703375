import math

EARTH_RADIUS_METERS = 6_371_000
WALKING_SPEED_METERS_PER_MINUTE = 80


def haversine_distance_meters(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> int:
    """Great-circle distance between two points, rounded to whole meters."""
    start_lat = math.radians(lat1)
    end_lat = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(start_lat) * math.cos(end_lat) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_METERS * c)


def estimate_walk_minutes(distance_meters: float) -> int:
    """Walking time at a conservative 80 m/min, rounded up."""
    return max(0, math.ceil(distance_meters / WALKING_SPEED_METERS_PER_MINUTE))
