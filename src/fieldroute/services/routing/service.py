"""Route planning session: stops, ordering, segment metrics and drafts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import quote

from ...models.domain import Coordinate, CustomerRecord, Route, RouteStop
from ...persistence.routes import DraftStore, RouteRepository
from ...schemas.routing import CoordinateModel, RouteDraftModel, RouteStopModel, SavedRouteModel
from ..geocoding.places import full_query
from ..geocoding.resolver import AddressResolver
from .estimator import DistanceEstimator
from .models import RouteEstimate, SequenceResult, StopInput
from .sequencer import sequence

logger = logging.getLogger(__name__)

NAVIGATION_BASE_URL = "https://www.google.com/maps/dir/?api=1"


def _stop_from_record(record: CustomerRecord, order: int) -> RouteStop:
    return RouteStop(identity=record.id, query=full_query(record), order=order, name=record.name)


def _record_from_stop(stop: RouteStop) -> CustomerRecord:
    """Record rebuilt from a stop restored from a draft."""

    query = stop.query
    return CustomerRecord(
        id=stop.identity,
        name=stop.name,
        address=query.address or None,
        postal_code=query.postal_code or None,
        city=query.city or None,
        province=query.province or None,
        country=query.country or None,
    )


def _cancelling(task: Optional[asyncio.Task]) -> bool:
    cancelling = getattr(task, "cancelling", None)
    return bool(cancelling and cancelling())


def navigation_url(stops: Sequence[RouteStop]) -> Optional[str]:
    """Google Maps directions link visiting ``stops`` in order."""

    if not stops:
        return None

    def place(stop: RouteStop) -> str:
        # street-level stops navigate by address, the rest by coordinate
        if stop.query.address or stop.coordinate is None:
            text = stop.query.format()
        else:
            text = f"{stop.coordinate.latitude},{stop.coordinate.longitude}"
        return quote(text, safe=",")

    points = [place(stop) for stop in stops]
    url = f"{NAVIGATION_BASE_URL}&origin={points[0]}&destination={points[-1]}"
    if len(points) > 2:
        url += f"&waypoints={'|'.join(points[1:-1])}"
    return url + "&travelmode=driving"


@dataclass(slots=True)
class PlannedRoute:
    route: Route
    estimate: RouteEstimate
    sequence: Optional[SequenceResult]

    @property
    def unresolved(self) -> list[str]:
        return [stop.identity for stop in self.route.stops if not stop.resolved]


class RoutePlanner:
    """One user's route-planning session.

    Every change to the stop list renumbers the stops, recomputes segment
    metrics and autosaves the draft. A recomputation that finishes after a newer
    one was requested is dropped instead of applied.
    """

    def __init__(
        self,
        resolver: AddressResolver,
        estimator: DistanceEstimator,
        drafts: DraftStore | None = None,
        repository: RouteRepository | None = None,
        user_id: str | None = None,
    ) -> None:
        self.resolver = resolver
        self.estimator = estimator
        self.drafts = drafts
        self.repository = repository
        self.user_id = user_id
        self.route = Route()
        self.start: Optional[Coordinate] = None
        self.last_estimate: Optional[RouteEstimate] = None
        self._records: dict[str, CustomerRecord] = {}
        self._generation = 0

    # Helpers ------------------------------------------------------------------

    def _index(self, index: int) -> int:
        if not 0 <= index < len(self.route.stops):
            raise ValueError(f"Stop index {index} out of range for a route of {len(self.route.stops)} stops.")
        return index

    def stop_inputs(self) -> list[StopInput]:
        return [
            StopInput(stop.identity, stop.coordinate, stop.query.format())
            for stop in self.route.stops
        ]

    def _record_for(self, stop: RouteStop) -> CustomerRecord:
        return self._records.get(stop.identity) or _record_from_stop(stop)

    def _autosave(self) -> None:
        if self.drafts is None or not self.user_id:
            return
        if not self.route.stops:
            self.drafts.clear(self.user_id)
            return
        self.drafts.save(self.user_id, self.to_draft())

    async def refresh(self) -> Optional[RouteEstimate]:
        """Renumber, recompute metrics and autosave after the stop list changed."""

        self.route.renumber()
        estimate = await self.recalculate()
        self._autosave()
        return estimate

    # Stop list ----------------------------------------------------------------

    async def add_stop(self, record: CustomerRecord) -> RouteStop:
        if record.id in self.route.identities():
            raise ValueError(f"Customer {record.id} is already in the route.")
        route = self.route
        stop = _stop_from_record(record, len(route.stops) + 1)
        stop.coordinate = await self.resolver.resolve(record)
        if self.route is not route:
            logger.debug(f"Route was cleared while locating {record.id}; stop dropped")
            return stop
        self._records[record.id] = record
        stop.error = None if stop.resolved else "unresolved"
        self.route.stops.append(stop)
        await self.refresh()
        return stop

    async def remove_stop(self, identity: str) -> bool:
        before = len(self.route.stops)
        self.route.stops = [stop for stop in self.route.stops if stop.identity != identity]
        if len(self.route.stops) == before:
            return False
        self._records.pop(identity, None)
        await self.refresh()
        return True

    async def move_up(self, index: int) -> None:
        self._index(index)
        if index == 0:
            return
        stops = self.route.stops
        stops[index - 1], stops[index] = stops[index], stops[index - 1]
        await self.refresh()

    async def move_down(self, index: int) -> None:
        self._index(index)
        if index == len(self.route.stops) - 1:
            return
        stops = self.route.stops
        stops[index + 1], stops[index] = stops[index], stops[index + 1]
        await self.refresh()

    async def reorder(self, source: int, target: int) -> None:
        """Move the stop at ``source`` to position ``target`` (drag and drop)."""

        self._index(source)
        self._index(target)
        if source == target:
            return
        stop = self.route.stops.pop(source)
        self.route.stops.insert(target, stop)
        await self.refresh()

    def load_records(self, records: Sequence[CustomerRecord]) -> None:
        """Replace the stop list with ``records`` in the given order, without resolving them."""

        seen: set[str] = set()
        stops: list[RouteStop] = []
        for order, record in enumerate(records, start=1):
            if record.id in seen:
                raise ValueError(f"Customer {record.id} appears more than once in the route.")
            seen.add(record.id)
            stops.append(_stop_from_record(record, order))
        self._records = {record.id: record for record in records}
        self.route = Route(stops=stops)

    def clear(self) -> None:
        self._generation += 1
        self.estimator.supersede()
        self.route = Route()
        self._records.clear()
        self.last_estimate = None
        if self.drafts is not None and self.user_id:
            self.drafts.clear(self.user_id)

    # Planning -----------------------------------------------------------------

    async def locate(self) -> list[str]:
        """Resolve every stop still missing a coordinate; returns the ones that stay unresolved."""

        missing = [stop for stop in self.route.stops if not stop.resolved]
        if missing:
            found = await self.resolver.resolve_many(
                [self._record_for(stop) for stop in missing],
                is_current=lambda identity: identity in self.route.identities(),
            )
            for stop in missing:
                stop.coordinate = found.get(stop.identity)
                stop.error = None if stop.resolved else "unresolved"
        return [stop.identity for stop in self.route.stops if not stop.resolved]

    async def optimize(self, start: Optional[Coordinate] = None) -> SequenceResult:
        """Reorder the stops by nearest neighbor from ``start`` and refresh metrics."""

        if start is not None:
            self.start = start
        await self.locate()
        result = sequence(self.stop_inputs(), self.start)
        if result.optimized:
            by_identity = {stop.identity: stop for stop in self.route.stops}
            self.route.stops = [by_identity[identity] for identity in result.order]
        else:
            logger.warning("Route order left unchanged: no stop could be placed on the map")
        await self.refresh()
        return result

    async def recalculate(self) -> Optional[RouteEstimate]:
        self._generation += 1
        generation = self._generation
        try:
            estimate = await self.estimator.estimate_segments(self.stop_inputs())
        except asyncio.CancelledError:
            if generation == self._generation or _cancelling(asyncio.current_task()):
                raise
            logger.debug("Route estimate cancelled by a newer change")
            return None
        if generation != self._generation:
            logger.debug("Discarding superseded route estimate")
            return None
        self._apply(estimate)
        return estimate

    def _apply(self, estimate: RouteEstimate) -> None:
        stops = self.route.stops
        for stop in stops:
            stop.distance_from_previous = None
            stop.duration_from_previous = None
        for stop, segment in zip(stops[1:], estimate.segments):
            stop.distance_from_previous = segment.distance_km
            stop.duration_from_previous = segment.duration_min
            if segment.error and stop.resolved:
                stop.error = segment.error
            elif stop.resolved:
                stop.error = None
        self.route.total_distance = estimate.total_distance_km
        self.route.total_duration = estimate.total_duration_min
        self.last_estimate = estimate
        if estimate.has_errors:
            logger.info("Some route segments could not be computed; totals are approximate")

    # Drafts and saved routes --------------------------------------------------

    def to_draft(self) -> RouteDraftModel:
        return RouteDraftModel(
            stops=[RouteStopModel.from_stop(stop) for stop in self.route.stops],
            start=CoordinateModel.from_coordinate(self.start),
            total_distance=self.route.total_distance,
            total_duration=self.route.total_duration,
        )

    def restore_draft(self) -> bool:
        """Load the autosaved draft, but only into an empty session."""

        if self.route.stops or self.drafts is None or not self.user_id:
            return False
        draft = self.drafts.load(self.user_id)
        if draft is None or not draft.stops:
            return False
        self.route = Route(
            stops=[stop.to_stop() for stop in draft.stops],
            total_distance=draft.total_distance,
            total_duration=draft.total_duration,
        )
        self.route.renumber()
        self.start = draft.start.to_coordinate() if draft.start else None
        logger.info(f"Restored route draft with {len(self.route.stops)} stops for user {self.user_id}")
        return True

    def save(
        self,
        name: str,
        date: str | None = None,
        time: str | None = None,
        route_id: str | None = None,
    ) -> SavedRouteModel:
        if not name or not name.strip():
            raise ValueError("Route name is required.")
        if self.repository is None:
            raise ValueError("No route repository configured for this session.")
        record = SavedRouteModel(
            id=route_id,
            name=name.strip(),
            date=date,
            time=time,
            stops=[RouteStopModel.from_stop(stop) for stop in self.route.stops],
            total_distance=self.route.total_distance,
            total_duration=self.route.total_duration,
            created_by=self.user_id,
        )
        saved = self.repository.save_route(record, user_id=self.user_id)
        if self.drafts is not None and self.user_id:
            self.drafts.clear(self.user_id)
        return saved

    def navigation_url(self) -> Optional[str]:
        return navigation_url(self.route.stops)


async def plan_route(
    records: Sequence[CustomerRecord],
    resolver: AddressResolver,
    estimator: DistanceEstimator,
    start: Optional[Coordinate] = None,
    optimize: bool = True,
) -> PlannedRoute:
    """Resolve, optionally sequence, and measure a one-off route."""

    planner = RoutePlanner(resolver, estimator)
    planner.load_records(records)

    result: Optional[SequenceResult] = None
    if optimize:
        result = await planner.optimize(start)
    else:
        await planner.locate()
        await planner.refresh()
    estimate = planner.last_estimate or await estimator.estimate_segments(planner.stop_inputs())
    logger.info(
        f"Planned route with {len(planner.route.stops)} stops: "
        f"{planner.route.total_distance:.1f} km ({estimate.mode})"
    )
    return PlannedRoute(route=planner.route, estimate=estimate, sequence=result)
