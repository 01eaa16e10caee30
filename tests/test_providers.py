import asyncio

import httpx
import pytest

from fieldroute.models.domain import Coordinate
from fieldroute.services.geocoding import FallbackGeocoder, GoogleGeocoder, NominatimGeocoder
from fieldroute.services.http_client import AsyncJSONClient
from fieldroute.services.routing.distance_client import GoogleDistanceClient, OSRMDistanceClient, check_health

NO_RETRY = {"max_retries": 0, "backoff_seconds": 0}


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def test_nominatim_returns_first_hit() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"lat": "37.2531", "lon": "-7.2044", "display_name": "Lepe"}])

    geocoder = NominatimGeocoder("https://nominatim.test", email="ops@example.com", transport=_transport(handler), **NO_RETRY)

    result = asyncio.run(geocoder.geocode("Lepe, Huelva, España"))

    assert result == Coordinate(37.2531, -7.2044)
    params = seen[0].url.params
    assert seen[0].url.path == "/search"
    assert params["q"] == "Lepe, Huelva, España"
    assert params["format"] == "json"
    assert params["email"] == "ops@example.com"


def test_nominatim_empty_answer_is_not_found() -> None:
    geocoder = NominatimGeocoder(
        "https://nominatim.test",
        transport=_transport(lambda request: httpx.Response(200, json=[])),
        **NO_RETRY,
    )
    assert asyncio.run(geocoder.geocode("Nowhere")) is None


def test_nominatim_out_of_range_coordinate_is_not_found() -> None:
    geocoder = NominatimGeocoder(
        "https://nominatim.test",
        transport=_transport(lambda request: httpx.Response(200, json=[{"lat": "137.0", "lon": "-7.0"}])),
        **NO_RETRY,
    )
    assert asyncio.run(geocoder.geocode("Broken")) is None


def test_google_geocoder_statuses() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        address = request.url.params["address"]
        if address == "found":
            return httpx.Response(
                200,
                json={"status": "OK", "results": [{"geometry": {"location": {"lat": 36.53, "lng": -6.29}}}]},
            )
        if address == "missing":
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
        return httpx.Response(200, json={"status": "REQUEST_DENIED"})

    geocoder = GoogleGeocoder(api_key="key", base_url="https://maps.test", transport=_transport(handler), **NO_RETRY)

    assert asyncio.run(geocoder.geocode("found")) == Coordinate(36.53, -6.29)
    assert asyncio.run(geocoder.geocode("missing")) is None
    with pytest.raises(ValueError):
        asyncio.run(geocoder.geocode("denied"))


def test_google_geocoder_requires_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from fieldroute.config import settings

    monkeypatch.setattr(settings, "google_maps_api_key", None)
    with pytest.raises(ValueError):
        GoogleGeocoder()


def test_fallback_geocoder_moves_to_next_provider_on_error() -> None:
    class Failing:
        async def geocode(self, address):
            raise ConnectionError("down")

    class Answering:
        async def geocode(self, address):
            return Coordinate(37.0, -7.0)

    assert asyncio.run(FallbackGeocoder([Failing(), Answering()]).geocode("x")) == Coordinate(37.0, -7.0)
    with pytest.raises(ConnectionError):
        asyncio.run(FallbackGeocoder([Failing()]).geocode("x"))


def test_client_retries_retryable_status() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    client = AsyncJSONClient("https://svc.test", max_retries=1, backoff_seconds=0, transport=_transport(handler))

    assert asyncio.run(client.get_json("/ping")) == {"ok": True}
    assert len(attempts) == 2


def test_client_does_not_retry_client_errors() -> None:
    client = AsyncJSONClient(
        "https://svc.test",
        max_retries=3,
        backoff_seconds=0,
        transport=_transport(lambda request: httpx.Response(404)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.get_json("/missing"))


def test_client_raises_connection_error_when_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = AsyncJSONClient("https://svc.test", max_retries=1, backoff_seconds=0, transport=_transport(handler))

    with pytest.raises(ConnectionError):
        asyncio.run(client.get_json("/ping"))


def test_osrm_segments_convert_units() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 12500.0, "duration": 900.0}]})

    client = OSRMDistanceClient("https://osrm.test", profile="driving", transport=_transport(handler), **NO_RETRY)
    waypoints = [Coordinate(37.26, -6.94), Coordinate(37.25, -7.20), Coordinate(36.53, -6.29)]

    segments = asyncio.run(client.segments(waypoints))

    assert len(segments) == 2
    assert segments[0].distance_km == pytest.approx(12.5)
    assert segments[0].duration_min == pytest.approx(15.0)
    assert seen[0] == "/route/v1/driving/-6.94,37.26;-7.2,37.25"


def test_osrm_failed_pair_is_isolated() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "-7.2,37.25;" in request.url.path:
            return httpx.Response(200, json={"code": "NoRoute", "routes": []})
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1000.0, "duration": 60.0}]})

    client = OSRMDistanceClient("https://osrm.test", transport=_transport(handler), **NO_RETRY)
    waypoints = [Coordinate(37.26, -6.94), Coordinate(37.25, -7.20), Coordinate(36.53, -6.29)]

    first, second = asyncio.run(client.segments(waypoints))

    assert first.error is None and first.distance_km == pytest.approx(1.0)
    assert second.error == "NoRoute" and second.distance_km == 0.0


def test_google_distance_element_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["mode"] == "driving"
        return httpx.Response(200, json={"status": "OK", "rows": [{"elements": [{"status": "NOT_FOUND"}]}]})

    client = GoogleDistanceClient(api_key="key", base_url="https://maps.test", transport=_transport(handler), **NO_RETRY)

    (segment,) = asyncio.run(client.segments(["Calle Mayor 1, Lepe", "Cádiz"]))

    assert segment.error == "NOT_FOUND"
    assert segment.distance_km == 0.0


def test_check_health_reports_unreachable_provider() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    client = OSRMDistanceClient("https://osrm.test", transport=_transport(handler), **NO_RETRY)

    assert asyncio.run(check_health(client)) is False
    assert asyncio.run(check_health(None)) is False


def test_geocoders_treat_malformed_payloads_as_not_found() -> None:
    nominatim = NominatimGeocoder(
        "https://nominatim.test",
        transport=_transport(lambda request: httpx.Response(200, json=["garbage"])),
        **NO_RETRY,
    )
    google = GoogleGeocoder(
        api_key="key",
        base_url="https://maps.test",
        transport=_transport(
            lambda request: httpx.Response(
                200, json={"status": "OK", "results": [{"geometry": {"location": "37.2,-7.0"}}]}
            )
        ),
        **NO_RETRY,
    )

    assert asyncio.run(nominatim.geocode("Lepe")) is None
    assert asyncio.run(google.geocode("Lepe")) is None


def test_distance_clients_flag_malformed_payloads_per_pair() -> None:
    osrm = OSRMDistanceClient(
        "https://osrm.test",
        transport=_transport(lambda request: httpx.Response(200, json=["not", "a", "route"])),
        **NO_RETRY,
    )
    google = GoogleDistanceClient(
        api_key="key",
        base_url="https://maps.test",
        transport=_transport(lambda request: httpx.Response(200, json={"status": "OK", "rows": ["broken"]})),
        **NO_RETRY,
    )
    waypoints = [Coordinate(37.26, -6.94), Coordinate(37.25, -7.20)]

    (osrm_segment,) = asyncio.run(osrm.segments(waypoints))
    (google_segment,) = asyncio.run(google.segments(waypoints))

    assert osrm_segment.error == "malformed response"
    assert osrm_segment.distance_km == 0.0
    assert google_segment.error
    assert google_segment.distance_km == 0.0
