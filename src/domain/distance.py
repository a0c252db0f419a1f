"""
Distance calculation using the Haversine formula.

Used for both geofence proximity checks and the cumulative trip distance,
so the two can never disagree about how far apart two fixes are.  All math
is double precision with the mean earth radius of 6371 km.

Complexity: O(1) per call.
"""

import math

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    # Rounding can push ``a`` a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def distance_between(a, b) -> float:
    """Haversine distance between two objects exposing latitude/longitude."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
