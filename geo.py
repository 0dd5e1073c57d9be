import math
from typing import Dict, Tuple

EARTH_RADIUS_M = 6371000
METERS_PER_DEGREE_LAT = 111000

LatLng = Tuple[float, float]


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_m: float) -> Dict[str, float]:
    """Square box enclosing a circle of ``radius_m`` around the point.

    Used as a cheap prefilter before exact distances are computed.
    """
    lat_delta = radius_m / METERS_PER_DEGREE_LAT
    lng_delta = radius_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(lat)))
    return {
        "north": lat + lat_delta,
        "south": lat - lat_delta,
        "east": lng + lng_delta,
        "west": lng - lng_delta,
    }


def within_bounds(coordinates: dict, bounds: Dict[str, float]) -> bool:
    lat = coordinates.get("lat")
    lng = coordinates.get("lng")
    if lat is None or lng is None:
        return False
    return bounds["south"] <= lat <= bounds["north"] and bounds["west"] <= lng <= bounds["east"]
