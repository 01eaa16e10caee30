"""Per-segment distance/duration estimation for an ordered list of stops."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Optional, Sequence

from ...config import settings
from ..geospatial import distance_between
from .distance_client import DrivingDistanceProvider
from .models import EstimateMode, RouteEstimate, SegmentEstimate, StopInput

logger = logging.getLogger(__name__)


def route_signature(stops: Sequence[StopInput], mode: EstimateMode) -> tuple:
    """Key identifying a computation: the mode plus each stop and where it is."""

    parts = []
    for stop in stops:
        where = stop.coordinate.as_tuple() if stop.coordinate else stop.address
        parts.append((stop.identity, where))
    return (mode, tuple(parts))


def _totals(segments: Sequence[SegmentEstimate]) -> tuple[float, float]:
    distance = sum(segment.distance_km for segment in segments if not segment.error)
    duration = sum(segment.duration_min or 0.0 for segment in segments if not segment.error)
    return distance, duration


def estimate_offline(stops: Sequence[StopInput]) -> RouteEstimate:
    """Great-circle distance between consecutive stops; durations stay undefined."""

    segments: list[SegmentEstimate] = []
    for origin, destination in zip(stops, stops[1:]):
        if origin.coordinate is None or destination.coordinate is None:
            segments.append(SegmentEstimate(origin.identity, destination.identity, 0.0, None, error="unresolved"))
            continue
        segments.append(
            SegmentEstimate(
                origin.identity,
                destination.identity,
                distance_between(origin.coordinate, destination.coordinate),
                None,
            )
        )
    total_distance, _ = _totals(segments)
    return RouteEstimate(
        segments=segments,
        total_distance_km=total_distance,
        total_duration_min=0.0,
        mode="offline",
        signature=route_signature(stops, "offline"),
    )


class DistanceEstimator:
    """Estimate segment metrics online when possible, offline otherwise.

    Results are memoized by route signature, and a request for a signature that
    is already being computed awaits that computation instead of starting a new
    one. Once the online provider reports itself unreachable the estimator stays
    offline for the rest of its life.
    """

    def __init__(
        self,
        provider: DrivingDistanceProvider | None = None,
        mode: EstimateMode | None = None,
        cache_size: int | None = None,
    ) -> None:
        self.provider = provider
        requested = mode or settings.distance_mode
        self._online = requested == "online" and provider is not None
        self.cache_size = cache_size or settings.estimate_cache_size
        self._results: OrderedDict[tuple, RouteEstimate] = OrderedDict()
        self._in_flight: dict[tuple, asyncio.Task] = {}

    @property
    def mode(self) -> EstimateMode:
        return "online" if self._online else "offline"

    def in_flight(self, stops: Sequence[StopInput]) -> bool:
        return route_signature(stops, self.mode) in self._in_flight

    def cached(self, stops: Sequence[StopInput]) -> Optional[RouteEstimate]:
        return self._results.get(route_signature(stops, self.mode))

    async def estimate_segments(self, stops: Sequence[StopInput]) -> RouteEstimate:
        stops = list(stops)
        signature = route_signature(stops, self.mode)
        cached = self._results.get(signature)
        if cached is not None:
            self._results.move_to_end(signature)
            return cached

        task = self._in_flight.get(signature)
        if task is None:
            task = asyncio.ensure_future(self._compute(stops))
            self._in_flight[signature] = task
            task.add_done_callback(lambda done, key=signature: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, signature: tuple, task: asyncio.Task) -> None:
        if self._in_flight.get(signature) is task:
            del self._in_flight[signature]

    async def _compute(self, stops: list[StopInput]) -> RouteEstimate:
        if len(stops) < 2:
            estimate = RouteEstimate([], 0.0, 0.0, self.mode, route_signature(stops, self.mode))
        elif self._online:
            try:
                estimate = await self._estimate_online(stops)
            except ConnectionError as exc:
                logger.warning(f"Driving-distance provider unavailable: {exc}. Using haversine for the rest of the session.")
                self._online = False
                estimate = estimate_offline(stops)
        else:
            estimate = estimate_offline(stops)
        self._remember(estimate)
        return estimate

    async def _estimate_online(self, stops: list[StopInput]) -> RouteEstimate:
        assert self.provider is not None
        segments: list[SegmentEstimate] = []
        for origin, destination in zip(stops, stops[1:]):
            if origin.waypoint is None or destination.waypoint is None:
                segments.append(SegmentEstimate(origin.identity, destination.identity, 0.0, 0.0, error="unresolved"))
                continue
            result = await self.provider.segments([origin.waypoint, destination.waypoint])
            if len(result) != 1:
                segments.append(
                    SegmentEstimate(origin.identity, destination.identity, 0.0, 0.0, error="unexpected provider response")
                )
                continue
            segment = result[0]
            segments.append(
                SegmentEstimate(
                    origin.identity,
                    destination.identity,
                    0.0 if segment.error else segment.distance_km,
                    0.0 if segment.error else segment.duration_min,
                    error=segment.error,
                )
            )
        failed = sum(1 for segment in segments if segment.error)
        if failed:
            logger.warning(f"Partial distance failure: {failed}/{len(segments)} segments could not be computed")
        total_distance, total_duration = _totals(segments)
        return RouteEstimate(segments, total_distance, total_duration, "online", route_signature(stops, "online"))

    def _remember(self, estimate: RouteEstimate) -> None:
        self._results[estimate.signature] = estimate
        self._results.move_to_end(estimate.signature)
        while len(self._results) > self.cache_size:
            self._results.popitem(last=False)

    def supersede(self) -> None:
        """Cancel every in-flight computation; their results are never applied."""

        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()

    def invalidate(self) -> None:
        self._results.clear()
