"""
GeoIndex -- static city coordinates and great-circle distance.

Responsibility:
    Resolves (city, state) pairs to coordinates from a fixed table of Indian
    cities and computes haversine distances between points.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    None.  Unknown cities resolve to the centre-of-country coordinate with
    ``is_fallback=True``; callers treat that as low confidence, not an error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float
    is_fallback: bool = False


DEFAULT_LOCATION = GeoPoint(20.5937, 78.9629, is_fallback=True)

# Keyed by "city,state" in lower case.
CITY_COORDINATES: dict[str, GeoPoint] = {
    "mumbai,maharashtra": GeoPoint(19.0760, 72.8777),
    "delhi,delhi": GeoPoint(28.7041, 77.1025),
    "bangalore,karnataka": GeoPoint(12.9716, 77.5946),
    "hyderabad,telangana": GeoPoint(17.3850, 78.4867),
    "ahmedabad,gujarat": GeoPoint(23.0225, 72.5714),
    "chennai,tamil nadu": GeoPoint(13.0827, 80.2707),
    "kolkata,west bengal": GeoPoint(22.5726, 88.3639),
    "pune,maharashtra": GeoPoint(18.5204, 73.8567),
    "jaipur,rajasthan": GeoPoint(26.9124, 75.7873),
    "surat,gujarat": GeoPoint(21.1702, 72.8311),
    "lucknow,uttar pradesh": GeoPoint(26.8467, 80.9462),
    "kanpur,uttar pradesh": GeoPoint(26.4499, 80.3319),
    "nagpur,maharashtra": GeoPoint(21.1458, 79.0882),
    "indore,madhya pradesh": GeoPoint(22.7196, 75.8577),
    "thane,maharashtra": GeoPoint(19.2183, 72.9781),
    "bhopal,madhya pradesh": GeoPoint(23.2599, 77.4126),
    "visakhapatnam,andhra pradesh": GeoPoint(17.6868, 83.2185),
    "pimpri-chinchwad,maharashtra": GeoPoint(18.6298, 73.7997),
    "patna,bihar": GeoPoint(25.5941, 85.1376),
    "vadodara,gujarat": GeoPoint(22.3072, 73.1812),
}


def _key(city: str, state: str) -> str:
    return f"{city.strip().lower()},{state.strip().lower()}"


def coordinates_for(city: str | None, state: str | None) -> GeoPoint:
    """Look up a city case-insensitively; unknown pairs get DEFAULT_LOCATION."""
    if not city or not state:
        return DEFAULT_LOCATION
    return CITY_COORDINATES.get(_key(city, state), DEFAULT_LOCATION)


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance in kilometres, rounded to 2 decimal places."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_KM * c, 2)


def resolve_location(
    lat: float | None,
    lng: float | None,
    city: str | None,
    state: str | None,
) -> GeoPoint:
    """Prefer explicit coordinates; otherwise fall back to the city table."""
    if lat is not None and lng is not None:
        return GeoPoint(float(lat), float(lng))
    return coordinates_for(city, state)


class GeoIndex:
    """Object facade over the module functions for injection into services."""

    def coordinates_for(self, city: str | None, state: str | None) -> GeoPoint:
        return coordinates_for(city, state)

    def distance_km(self, a: GeoPoint, b: GeoPoint) -> float:
        return distance_km(a, b)

    def resolve(
        self,
        lat: float | None,
        lng: float | None,
        city: str | None = None,
        state: str | None = None,
    ) -> GeoPoint:
        return resolve_location(lat, lng, city, state)
