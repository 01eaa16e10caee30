"""Geospatial helper functions."""

from __future__ import annotations

import math

from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def mercator_pixel(lat: float, lon: float, zoom: float, tile_size: int = 256) -> tuple[float, float]:
    """Project a coordinate to Web Mercator world pixels at the given zoom."""

    scale = tile_size * (2 ** zoom)
    # Clamp to the Mercator limit so the poles do not project to infinity.
    lat = max(min(lat, 85.05112878), -85.05112878)
    sin_lat = math.sin(math.radians(lat))
    x = (lon + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def mercator_latitude(y: float, zoom: float, tile_size: int = 256) -> float:
    """Inverse of the latitude part of :func:`mercator_pixel`."""

    scale = tile_size * (2 ** zoom)
    n = math.pi - 2 * math.pi * y / scale
    return math.degrees(math.atan(math.sinh(n)))
