"""Great-circle distance and heading helpers."""
import math

EARTH_RADIUS_M = 6371000


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points given in degrees, in meters."""
    lat1, lng1, lat2, lng2 = map(math.radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.asin(math.sqrt(min(1.0, a)))


def turn_angle(heading1: float, heading2: float) -> float:
    """Shortest angle between two headings, 0-180 degrees."""
    return 180.0 - abs((abs(heading1 - heading2) % 360.0) - 180.0)
