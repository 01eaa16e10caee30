"""Geocoding collaborators: Google Geocoding and OpenStreetMap Nominatim."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate
from ..http_client import AsyncJSONClient

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Optional[Coordinate]:
        """Return the coordinate for ``address`` or ``None`` when not found."""


def _coordinate_or_none(lat: Any, lon: Any, source: str) -> Optional[Coordinate]:
    try:
        return Coordinate(float(lat), float(lon))
    except (TypeError, ValueError) as exc:
        logger.warning(f"Malformed coordinate from {source}: lat={lat!r} lon={lon!r} ({exc})")
        return None


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str | None = None,
        email: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_options: Any,
    ) -> None:
        self.http = AsyncJSONClient(base_url or settings.nominatim_base_url, transport=transport, **client_options)
        self.email = email if email is not None else settings.nominatim_email

    async def geocode(self, address: str) -> Optional[Coordinate]:
        params = {"format": "json", "q": address, "limit": "1"}
        if self.email:
            params["email"] = self.email
        data = await self.http.get_json("/search", params=params)
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        first = data[0]
        if first.get("lat") and first.get("lon"):
            return _coordinate_or_none(first["lat"], first["lon"], "nominatim")
        return None


class GoogleGeocoder:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_options: Any,
    ) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is not configured.")
        self.http = AsyncJSONClient(base_url or settings.google_maps_base_url, transport=transport, **client_options)

    async def geocode(self, address: str) -> Optional[Coordinate]:
        params = {
            "address": address,
            "key": self.api_key,
            "language": settings.geocoding_language,
            "region": settings.geocoding_region,
        }
        data = await self.http.get_json("/geocode/json", params=params)
        status = data.get("status") if isinstance(data, dict) else None
        if status == "ZERO_RESULTS":
            return None
        if status != "OK":
            raise ValueError(f"Google geocoding failed with status {status!r}")
        try:
            location = data["results"][0]["geometry"]["location"]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(location, dict):
            return None
        return _coordinate_or_none(location.get("lat"), location.get("lng"), "google")


class FallbackGeocoder:
    """Ask each provider in turn until one answers with a coordinate.

    A provider error moves on to the next provider. When every provider failed
    with an error the last error is raised; a plain "not found" returns ``None``.
    """

    def __init__(self, providers: Sequence[Geocoder]) -> None:
        if not providers:
            raise ValueError("At least one geocoding provider is required.")
        self.providers = list(providers)

    async def geocode(self, address: str) -> Optional[Coordinate]:
        last_error: Exception | None = None
        answered = False
        for provider in self.providers:
            name = type(provider).__name__
            try:
                result = await provider.geocode(address)
            except (httpx.HTTPError, ConnectionError, ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning(f"{name} failed for '{address}', trying next provider: {exc}")
                last_error = exc
                continue
            answered = True
            if result is not None:
                return result
        if not answered and last_error is not None:
            raise last_error
        return None


def build_geocoder(transport: httpx.AsyncBaseTransport | None = None) -> Optional[Geocoder]:
    """Build the configured geocoding chain, or ``None`` when geocoding is disabled."""

    if not settings.geocoding_enabled:
        return None
    providers: list[Geocoder] = []
    if settings.google_maps_api_key:
        providers.append(GoogleGeocoder(transport=transport))
    providers.append(NominatimGeocoder(transport=transport))
    return FallbackGeocoder(providers) if len(providers) > 1 else providers[0]
