"""Address resolution services."""

from .cache import CoordinateCache
from .providers import FallbackGeocoder, Geocoder, GoogleGeocoder, NominatimGeocoder, build_geocoder
from .resolver import AddressResolver, Resolution

__all__ = [
    "AddressResolver",
    "CoordinateCache",
    "FallbackGeocoder",
    "Geocoder",
    "GoogleGeocoder",
    "NominatimGeocoder",
    "Resolution",
    "build_geocoder",
]
