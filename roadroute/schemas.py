"""Pydantic request/response schemas for the routing API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .routing.util import Profile


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(ge=-180, le=180, allow_inf_nan=False)

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class RouteQuery(BaseModel):
    start: LatLng
    end: LatLng
    profile: Profile = Profile.DRIVE


class BatchRouteItem(RouteQuery):
    id: str = Field(min_length=1)


class BatchRouteQuery(BaseModel):
    routes: List[BatchRouteItem] = Field(default_factory=list, max_length=100)

    @field_validator("routes")
    @classmethod
    def validate_routes(cls, v: List[BatchRouteItem]) -> List[BatchRouteItem]:
        if not v:
            raise ValueError("routes list must not be empty")
        route_ids = {r.id for r in v}
        if len(route_ids) != len(v):
            raise ValueError("duplicate route ids in request")
        return v


class RouteOut(BaseModel):
    coordinates: List[List[float]]
    distanceM: float
    durationSec: float
    method: str
    source: str


class BatchRouteOut(BaseModel):
    id: str
    path: List[List[float]]
    method: Optional[str] = None
    source: Optional[str] = None


class CacheCleared(BaseModel):
    cleared: int


class StatsOut(BaseModel):
    cache: Dict[str, Any]
    providers: Dict[str, Dict[str, Any]]
