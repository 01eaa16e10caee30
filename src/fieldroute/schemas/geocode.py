"""Geocoding and distance proxy schemas."""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .routing import CoordinateModel, SegmentModel


class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=1)


class GeocodeResponse(BaseModel):
    success: bool
    data: Optional[CoordinateModel] = None
    error: Optional[str] = None


class DistanceRequest(BaseModel):
    waypoints: List[Union[CoordinateModel, str]] = Field(
        ...,
        min_length=2,
        description="Coordinates or free-text addresses, in visiting order.",
    )


class DistanceData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    segments: List[SegmentModel]
    total_distance: float = Field(..., alias="totalDistance")
    total_duration: float = Field(..., alias="totalDuration")
    mode: Literal["online", "offline"]


class DistanceResponse(BaseModel):
    success: bool
    data: Optional[DistanceData] = None
    error: Optional[str] = None
