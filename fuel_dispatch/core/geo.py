"""Geospatial helpers for request locations and bunk service areas."""

import math
from typing import Tuple

from fuel_dispatch.core.exceptions import InvalidLocation

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32


def validate_location(lat, lng) -> Tuple[float, float]:
    """Range check only; the coordinates are stored verbatim."""
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        raise InvalidLocation("Latitude and longitude must be numbers")

    if math.isnan(lat_f) or math.isnan(lng_f):
        raise InvalidLocation("Latitude and longitude must be numbers")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidLocation(f"Latitude {lat_f} is outside -90..90")
    if not -180.0 <= lng_f <= 180.0:
        raise InvalidLocation(f"Longitude {lng_f} is outside -180..180")
    return lat_f, lng_f


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lng, max_lng) enclosing a circle of radius_km.

    Used as a coarse SQL prefilter before the exact haversine check.
    """
    d_lat = radius_km / KM_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        d_lng = 180.0
    else:
        d_lng = min(180.0, radius_km / (KM_PER_DEGREE_LAT * cos_lat))
    return (
        max(-90.0, lat - d_lat),
        min(90.0, lat + d_lat),
        max(-180.0, lng - d_lng),
        min(180.0, lng + d_lng),
    )
