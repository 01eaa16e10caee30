"""Driving-distance collaborators backed by OSRM or the Google Distance Matrix API."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate
from ..http_client import AsyncJSONClient
from .models import SegmentEstimate, Waypoint

logger = logging.getLogger(__name__)


class DrivingDistanceProvider(Protocol):
    async def segments(self, waypoints: Sequence[Waypoint]) -> list[SegmentEstimate]:
        """Return one estimate per consecutive waypoint pair.

        A failed pair is reported through ``SegmentEstimate.error``. Raising
        ``ConnectionError`` means the provider itself is unreachable.
        """


def _label(waypoint: Waypoint) -> str:
    if isinstance(waypoint, Coordinate):
        return f"{waypoint.latitude:.6f},{waypoint.longitude:.6f}"
    return str(waypoint)


def _failed(origin: Waypoint, destination: Waypoint, error: str) -> SegmentEstimate:
    return SegmentEstimate(
        from_identity=_label(origin),
        to_identity=_label(destination),
        distance_km=0.0,
        duration_min=0.0,
        error=error,
    )


class _PairwiseProvider:
    """Shared loop: one request per consecutive pair, errors isolated per pair."""

    async def _pair(self, origin: Waypoint, destination: Waypoint) -> SegmentEstimate:
        raise NotImplementedError

    async def segments(self, waypoints: Sequence[Waypoint]) -> list[SegmentEstimate]:
        if len(waypoints) < 2:
            return []
        results: list[SegmentEstimate] = []
        for origin, destination in zip(waypoints, waypoints[1:]):
            try:
                results.append(await self._pair(origin, destination))
            except ConnectionError:
                raise
            except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
                logger.warning(f"Distance request {_label(origin)} -> {_label(destination)} failed: {exc}")
                results.append(_failed(origin, destination, str(exc) or type(exc).__name__))
        return results


class OSRMDistanceClient(_PairwiseProvider):
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_options: Any,
    ) -> None:
        base = base_url or settings.osrm_base_url
        if not base:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.http = AsyncJSONClient(base, transport=transport, **client_options)

    async def _pair(self, origin: Waypoint, destination: Waypoint) -> SegmentEstimate:
        if not isinstance(origin, Coordinate) or not isinstance(destination, Coordinate):
            return _failed(origin, destination, "unresolved")
        # OSRM expects lon,lat order
        coordinate_str = ";".join(f"{c.longitude},{c.latitude}" for c in (origin, destination))
        data = await self.http.get_json(
            f"/route/v1/{self.profile}/{coordinate_str}",
            params={"overview": "false", "steps": "false"},
        )
        if not isinstance(data, dict):
            return _failed(origin, destination, "malformed response")
        if data.get("code") != "Ok" or not data.get("routes"):
            return _failed(origin, destination, data.get("code") or "NoRoute")
        route = data["routes"][0]
        return SegmentEstimate(
            from_identity=_label(origin),
            to_identity=_label(destination),
            distance_km=float(route["distance"]) / 1000.0,
            duration_min=float(route["duration"]) / 60.0,
        )


class GoogleDistanceClient(_PairwiseProvider):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_options: Any,
    ) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key not configured")
        self.http = AsyncJSONClient(base_url or settings.google_maps_base_url, transport=transport, **client_options)

    async def _pair(self, origin: Waypoint, destination: Waypoint) -> SegmentEstimate:
        params = {
            "origins": _label(origin),
            "destinations": _label(destination),
            "mode": "driving",
            "language": settings.geocoding_language,
            "key": self.api_key,
        }
        data = await self.http.get_json("/distancematrix/json", params=params)
        if not isinstance(data, dict):
            return _failed(origin, destination, "malformed response")
        element: dict = {}
        if data.get("status") == "OK":
            element = (data.get("rows") or [{}])[0].get("elements", [{}])[0]
        if not isinstance(element, dict):
            return _failed(origin, destination, "malformed response")
        if element.get("status") != "OK":
            return _failed(origin, destination, element.get("status") or data.get("status") or "Unknown error")
        return SegmentEstimate(
            from_identity=_label(origin),
            to_identity=_label(destination),
            distance_km=float(element.get("distance", {}).get("value", 0)) / 1000.0,
            duration_min=float(element.get("duration", {}).get("value", 0)) / 60.0,
        )


def build_distance_provider(transport: httpx.AsyncBaseTransport | None = None) -> Optional[DrivingDistanceProvider]:
    """Return the configured provider, or ``None`` when only offline estimation is possible."""

    if settings.distance_mode != "online":
        return None
    try:
        if settings.distance_provider == "google":
            return GoogleDistanceClient(transport=transport)
        return OSRMDistanceClient(transport=transport)
    except ValueError as exc:
        logger.warning(f"Driving-distance provider unavailable, using offline estimation: {exc}")
        return None


async def check_health(provider: DrivingDistanceProvider | None) -> bool:
    """Probe the provider with a short pair of coordinates (Berlin, as public OSRM docs use)."""

    if provider is None:
        return False
    probe = [Coordinate(52.517037, 13.388860), Coordinate(52.496891, 13.385983)]
    try:
        result = await provider.segments(probe)
    except (ConnectionError, httpx.HTTPError):
        return False
    return bool(result) and result[0].error is None
