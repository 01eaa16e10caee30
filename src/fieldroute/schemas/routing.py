"""Route planning request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import Coordinate, CustomerRecord, LocationQuery, RouteStop
from ..services.geocoding.places import group_label, normalize_place_name


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)

    @classmethod
    def from_coordinate(cls, coordinate: Optional[Coordinate]) -> Optional["CoordinateModel"]:
        if coordinate is None:
            return None
        return cls(lat=coordinate.latitude, lng=coordinate.longitude)


class CustomerModel(BaseModel):
    """Location-relevant fields of a CRM customer row."""

    id: str = Field(..., min_length=1)
    name: str = ""
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = Field(default=None, description="Free text; may carry 'Ciudad:' / 'Provincia:' lines.")

    def to_record(self) -> CustomerRecord:
        return CustomerRecord(
            id=self.id,
            name=self.name,
            address=self.address,
            postal_code=self.postal_code,
            city=self.city,
            province=self.province,
            country=self.country,
            latitude=self.latitude,
            longitude=self.longitude,
            notes=self.notes,
        )


class RouteStopModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    name: str = ""
    order: int = Field(..., ge=1)
    address: str = ""
    postal_code: str = Field(default="", alias="postalCode")
    city: str = ""
    province: str = ""
    country: str = ""
    coordinate: Optional[CoordinateModel] = None
    distance_from_previous: Optional[float] = Field(default=None, alias="distanceFromPrevious")
    duration_from_previous: Optional[float] = Field(default=None, alias="durationFromPrevious")
    error: Optional[str] = None

    @classmethod
    def from_stop(cls, stop: RouteStop) -> "RouteStopModel":
        return cls(
            customer_id=stop.identity,
            name=stop.name,
            order=stop.order,
            address=stop.query.address,
            postal_code=stop.query.postal_code,
            city=stop.query.city,
            province=stop.query.province,
            country=stop.query.country,
            coordinate=CoordinateModel.from_coordinate(stop.coordinate),
            distance_from_previous=stop.distance_from_previous,
            duration_from_previous=stop.duration_from_previous,
            error=stop.error,
        )

    def to_stop(self) -> RouteStop:
        return RouteStop(
            identity=self.customer_id,
            query=LocationQuery(
                address=self.address,
                postal_code=self.postal_code,
                city=self.city,
                province=self.province,
                country=self.country,
            ),
            order=self.order,
            name=self.name,
            coordinate=self.coordinate.to_coordinate() if self.coordinate else None,
            distance_from_previous=self.distance_from_previous,
            duration_from_previous=self.duration_from_previous,
            error=self.error,
        )


class SavedRouteModel(BaseModel):
    """Persisted route record, serialized with the CRM's camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, description="Omit to save as new; set to update an existing route.")
    name: str
    date: Optional[str] = Field(default=None, description="Planned route date (YYYY-MM-DD).")
    time: Optional[str] = Field(default=None, description="Planned start time (HH:MM).")
    stops: List[RouteStopModel] = Field(default_factory=list)
    total_distance: float = Field(default=0.0, ge=0.0, alias="totalDistance")
    total_duration: float = Field(default=0.0, ge=0.0, alias="totalDuration")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class RouteDraftModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stops: List[RouteStopModel] = Field(default_factory=list)
    start: Optional[CoordinateModel] = None
    total_distance: float = Field(default=0.0, alias="totalDistance")
    total_duration: float = Field(default=0.0, alias="totalDuration")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class SegmentModel(BaseModel):
    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")
    distance: float
    duration: Optional[float] = None
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class PlanRequest(BaseModel):
    customers: List[CustomerModel] = Field(..., min_length=1)
    start: Optional[CoordinateModel] = Field(
        default=None,
        description="Current position of the user; when omitted the first placeable stop anchors the route.",
    )
    optimize: bool = True


class PlanResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stops: List[RouteStopModel]
    segments: List[SegmentModel]
    total_distance: float = Field(..., alias="totalDistance")
    total_duration: float = Field(..., alias="totalDuration")
    mode: Literal["online", "offline"]
    optimized: bool
    degraded: bool = Field(default=False, description="True when at least one segment could not be computed.")
    unresolved: List[str] = Field(default_factory=list)
    navigation_url: Optional[str] = Field(default=None, alias="navigationUrl")


class MarkerPointModel(BaseModel):
    id: str
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    group: str = Field(default="", description="Coarse grouping key; derived from city/province/notes when empty.")
    city: Optional[str] = None
    province: Optional[str] = None
    notes: Optional[str] = None

    def group_key(self) -> str:
        if self.group:
            return normalize_place_name(self.group)
        return group_label(CustomerRecord(id=self.id, city=self.city, province=self.province, notes=self.notes))


class ViewportModel(BaseModel):
    center: CoordinateModel
    zoom: float = Field(..., ge=0.0, le=22.0)
    width_px: int = Field(default=1024, ge=1)
    height_px: int = Field(default=768, ge=1)


class DeclutterRequest(BaseModel):
    points: List[MarkerPointModel]
    viewport: ViewportModel


class RenderedMarkerModel(BaseModel):
    id: str
    lat: float
    lng: float
    displaced: bool


class DeclutterResponse(BaseModel):
    markers: List[RenderedMarkerModel]


class RelocateRequest(BaseModel):
    customers: List[CustomerModel] = Field(..., min_length=1)


class RelocateResponse(BaseModel):
    coordinates: Dict[str, Optional[CoordinateModel]]
    unresolved: List[str] = Field(default_factory=list)
