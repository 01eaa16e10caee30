"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Union

from ...models.domain import Coordinate

Waypoint = Union[Coordinate, str]
EstimateMode = Literal["online", "offline"]


@dataclass(slots=True)
class StopInput:
    """A stop as seen by the sequencer and estimator."""

    identity: str
    coordinate: Optional[Coordinate] = None
    address: str = ""

    @property
    def waypoint(self) -> Optional[Waypoint]:
        return self.coordinate or (self.address or None)


@dataclass(slots=True)
class SegmentEstimate:
    from_identity: str
    to_identity: str
    distance_km: float
    duration_min: Optional[float]
    error: Optional[str] = None


@dataclass(slots=True)
class RouteEstimate:
    segments: List[SegmentEstimate]
    total_distance_km: float
    total_duration_min: float
    mode: EstimateMode
    signature: tuple

    @property
    def has_errors(self) -> bool:
        return any(segment.error for segment in self.segments)


@dataclass(slots=True)
class SequenceResult:
    order: List[str]
    optimized: bool
    unresolved: List[str] = field(default_factory=list)
