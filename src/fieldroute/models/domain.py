"""Domain models for customer records, coordinates and routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A resolved WGS84 position in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_dict(cls, data: dict) -> "Coordinate":
        return cls(latitude=float(data["lat"]), longitude=float(data["lng"]))


@dataclass(frozen=True, slots=True)
class LocationQuery:
    """Structured address candidate handed to the geocoding collaborator."""

    address: str = ""
    postal_code: str = ""
    city: str = ""
    province: str = ""
    country: str = ""

    def format(self) -> str:
        parts = (self.address, self.postal_code, self.city, self.province, self.country)
        return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass(slots=True)
class CustomerRecord:
    """Location-relevant subset of a CRM customer row."""

    id: str
    name: str = ""
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None

    def stored_coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        try:
            return Coordinate(float(self.latitude), float(self.longitude))
        except (TypeError, ValueError):
            return None


@dataclass(slots=True)
class CacheEntry:
    identity: str
    coordinate: Coordinate
    written_at: datetime


@dataclass(slots=True)
class RouteStop:
    identity: str
    query: LocationQuery
    order: int
    name: str = ""
    coordinate: Optional[Coordinate] = None
    distance_from_previous: Optional[float] = None
    duration_from_previous: Optional[float] = None
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.coordinate is not None


@dataclass(slots=True)
class Route:
    stops: list[RouteStop] = field(default_factory=list)
    total_distance: float = 0.0
    total_duration: float = 0.0

    def identities(self) -> list[str]:
        return [stop.identity for stop in self.stops]

    def renumber(self) -> None:
        for order, stop in enumerate(self.stops, start=1):
            stop.order = order
