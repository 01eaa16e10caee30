import asyncio
from pathlib import Path

import pytest

from fieldroute.models.domain import Coordinate, CustomerRecord
from fieldroute.persistence.filesystem import FileStorage
from fieldroute.persistence.routes import DraftStore, RouteRepository
from fieldroute.services.geocoding import AddressResolver, CoordinateCache
from fieldroute.services.routing.estimator import DistanceEstimator
from fieldroute.services.routing.models import SegmentEstimate
from fieldroute.services.routing.service import RoutePlanner, navigation_url, plan_route


class DummyGeocoder:
    def __init__(self, answers: dict[str, Coordinate]):
        self.answers = answers
        self.calls: list[str] = []

    async def geocode(self, address: str):
        self.calls.append(address)
        for needle, coordinate in self.answers.items():
            if needle in address:
                return coordinate
        return None


def _customer(cid: str, lat: float | None = None, lon: float | None = None, **fields) -> CustomerRecord:
    return CustomerRecord(id=cid, name=f"Cliente {cid}", latitude=lat, longitude=lon, **fields)


def _planner(tmp_path: Path, geocoder=None, user_id: str | None = "user-1") -> RoutePlanner:
    storage = FileStorage(root=tmp_path)
    resolver = AddressResolver(CoordinateCache(storage), geocoder=geocoder, batch_delay_seconds=0)
    return RoutePlanner(
        resolver,
        DistanceEstimator(mode="offline"),
        drafts=DraftStore(storage),
        repository=RouteRepository(storage, client_factory=lambda: None),
        user_id=user_id,
    )


def test_add_stops_renumbers_measures_and_autosaves(tmp_path: Path) -> None:
    planner = _planner(tmp_path)

    async def scenario():
        await planner.add_stop(_customer("A", 37.26, -6.94))
        await planner.add_stop(_customer("B", 37.25, -7.20))

    asyncio.run(scenario())

    first, second = planner.route.stops
    assert [first.order, second.order] == [1, 2]
    assert first.distance_from_previous is None
    assert second.distance_from_previous == pytest.approx(planner.route.total_distance)
    assert second.duration_from_previous is None
    assert planner.route.total_duration == 0.0

    draft = planner.drafts.load("user-1")
    assert [stop.customer_id for stop in draft.stops] == ["A", "B"]


def test_adding_the_same_customer_twice_is_rejected(tmp_path: Path) -> None:
    planner = _planner(tmp_path)
    asyncio.run(planner.add_stop(_customer("A", 37.26, -6.94)))

    with pytest.raises(ValueError):
        asyncio.run(planner.add_stop(_customer("A", 37.26, -6.94)))


def test_move_and_reorder_keep_orders_contiguous(tmp_path: Path) -> None:
    planner = _planner(tmp_path)

    async def scenario():
        for cid, lat in (("A", 37.0), ("B", 37.1), ("C", 37.2)):
            await planner.add_stop(_customer(cid, lat, -7.0))
        await planner.move_up(2)
        assert planner.route.identities() == ["A", "C", "B"]
        await planner.move_down(0)
        assert planner.route.identities() == ["C", "A", "B"]
        await planner.move_up(0)
        await planner.reorder(2, 0)

    asyncio.run(scenario())

    assert planner.route.identities() == ["B", "C", "A"]
    assert [stop.order for stop in planner.route.stops] == [1, 2, 3]
    assert planner.route.stops[0].distance_from_previous is None
    with pytest.raises(ValueError):
        asyncio.run(planner.move_down(3))
    with pytest.raises(ValueError):
        asyncio.run(planner.reorder(0, 5))


def test_remove_stop_and_clear_drop_the_draft(tmp_path: Path) -> None:
    planner = _planner(tmp_path)

    async def scenario():
        await planner.add_stop(_customer("A", 37.0, -7.0))
        await planner.add_stop(_customer("B", 37.1, -7.0))
        assert await planner.remove_stop("A") is True
        assert await planner.remove_stop("missing") is False

    asyncio.run(scenario())

    assert planner.route.identities() == ["B"]
    assert planner.route.stops[0].order == 1
    assert planner.drafts.load("user-1") is not None

    planner.clear()

    assert planner.route.stops == []
    assert planner.drafts.load("user-1") is None


def test_optimize_orders_from_current_location(tmp_path: Path) -> None:
    geocoder = DummyGeocoder({"Plaza de las Monjas": Coordinate(37.26, -6.94)})
    planner = _planner(tmp_path, geocoder)

    async def scenario():
        await planner.add_stop(_customer("cadiz", 36.53, -6.29))
        await planner.add_stop(_customer("nowhere", address="Sin dirección"))
        await planner.add_stop(_customer("lepe", 37.25, -7.20))
        await planner.add_stop(_customer("huelva", address="Plaza de las Monjas", city="Huelva", province="Huelva"))
        return await planner.optimize(Coordinate(37.20, -6.90))

    result = asyncio.run(scenario())

    assert result.optimized
    assert planner.route.identities() == ["huelva", "lepe", "cadiz", "nowhere"]
    assert result.unresolved == ["nowhere"]
    nowhere = planner.route.stops[-1]
    assert nowhere.error == "unresolved"
    assert nowhere.distance_from_previous == 0.0
    assert planner.last_estimate.has_errors


def test_save_requires_name_and_clears_draft(tmp_path: Path) -> None:
    planner = _planner(tmp_path)
    asyncio.run(planner.add_stop(_customer("A", 37.0, -7.0)))

    with pytest.raises(ValueError):
        planner.save("   ")

    saved = planner.save("Ruta lunes", date="2026-10-19", time="09:00")

    assert saved.id
    assert saved.created_by == "user-1"
    assert [stop.customer_id for stop in saved.stops] == ["A"]
    assert planner.drafts.load("user-1") is None
    assert [route.name for route in planner.repository.list_routes()] == ["Ruta lunes"]

    updated = planner.save("Ruta lunes (v2)", route_id=saved.id)
    assert updated.id == saved.id
    assert updated.created_at == saved.created_at
    assert [route.name for route in planner.repository.list_routes()] == ["Ruta lunes (v2)"]


def test_restore_draft_only_into_an_empty_session(tmp_path: Path) -> None:
    planner = _planner(tmp_path)
    asyncio.run(planner.add_stop(_customer("A", 37.0, -7.0)))
    asyncio.run(planner.add_stop(_customer("B", 37.1, -7.0)))

    fresh = _planner(tmp_path)
    assert fresh.restore_draft() is True
    assert fresh.route.identities() == ["A", "B"]
    assert fresh.route.stops[1].coordinate == Coordinate(37.1, -7.0)
    assert fresh.restore_draft() is False


def test_navigation_url_uses_origin_destination_and_waypoints(tmp_path: Path) -> None:
    planner = _planner(tmp_path)

    async def scenario():
        await planner.add_stop(_customer("A", 37.0, -7.0, address="Calle Mayor 1", city="Lepe", province="Huelva"))
        await planner.add_stop(_customer("B", 37.1, -7.0, address="Calle Real 2", city="Lepe", province="Huelva"))
        await planner.add_stop(_customer("C", 37.2, -7.0, city="Cádiz"))

    asyncio.run(scenario())

    url = planner.navigation_url()
    assert url.startswith("https://www.google.com/maps/dir/?api=1&origin=Calle%20Mayor%201,%20Lepe,%20Huelva,%20Espa%C3%B1a")
    assert "&waypoints=Calle%20Real%202" in url
    assert "&destination=37.2,-7.0&waypoints=" in url
    assert url.endswith("&travelmode=driving")
    assert navigation_url([]) is None


def test_plan_route_end_to_end(tmp_path: Path) -> None:
    geocoder = DummyGeocoder(
        {
            "Avenida Andalucía 4": Coordinate(37.26, -6.94),
            "Calle Ancha 9": Coordinate(37.25, -7.20),
            "Calle Sacramento 2": Coordinate(36.53, -6.29),
        }
    )
    resolver = AddressResolver(CoordinateCache(), geocoder=geocoder, batch_delay_seconds=0)
    records = [
        _customer("3", address="Calle Sacramento 2", city="Cádiz", province="Cádiz"),
        _customer("2", address="Calle Ancha 9", city="Lepe", province="Huelva"),
        _customer("1", address="Avenida Andalucía 4", city="Huelva", province="Huelva"),
    ]

    planned = asyncio.run(
        plan_route(records, resolver, DistanceEstimator(mode="offline"), start=Coordinate(37.20, -6.90))
    )

    assert planned.sequence.order == ["1", "2", "3"]
    assert [stop.order for stop in planned.route.stops] == [1, 2, 3]
    assert planned.unresolved == []
    segment_sum = sum(stop.distance_from_previous or 0.0 for stop in planned.route.stops)
    assert segment_sum == pytest.approx(planned.route.total_distance)
    assert planned.estimate.mode == "offline"


def test_plan_route_rejects_duplicate_customers(tmp_path: Path) -> None:
    resolver = AddressResolver(CoordinateCache(), batch_delay_seconds=0)
    records = [_customer("A", 37.0, -7.0), _customer("A", 37.0, -7.0)]

    with pytest.raises(ValueError):
        asyncio.run(plan_route(records, resolver, DistanceEstimator(mode="offline")))


class GatedProvider:
    def __init__(self) -> None:
        self.gate = asyncio.Event()

    async def segments(self, waypoints):
        await self.gate.wait()
        return [SegmentEstimate("o", "d", 10.0, 12.0)]


def test_clear_during_pending_estimate_discards_the_result(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    planner = RoutePlanner(
        AddressResolver(CoordinateCache(storage), batch_delay_seconds=0),
        DistanceEstimator(GatedProvider(), mode="online"),
        drafts=DraftStore(storage),
        user_id="user-1",
    )

    async def scenario():
        planner.estimator.provider.gate.set()
        await planner.add_stop(_customer("A", 37.26, -6.94))
        planner.estimator.provider.gate.clear()
        pending = asyncio.ensure_future(planner.add_stop(_customer("B", 37.25, -7.20)))
        for _ in range(5):
            await asyncio.sleep(0)
        planner.clear()
        return await pending

    stop = asyncio.run(scenario())

    assert stop.identity == "B"
    assert planner.route.stops == []
    assert planner.last_estimate is None
    assert planner.drafts.load("user-1") is None
