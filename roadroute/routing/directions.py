"""Directions provider implementations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .util import GeoPoint, Profile, coerce_profile, decode_polyline, lnglat_to_points

logger = logging.getLogger(__name__)


class RouteMethod(str, Enum):
    OSRM = "osrm"
    MAPBOX = "mapbox"
    ORS = "ors"
    LOCAL = "local"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RouteResult:
    coordinates: Tuple[GeoPoint, ...]
    distance_m: float
    duration_sec: float
    method: RouteMethod
    source: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "coordinates": [[p.lat, p.lng] for p in self.coordinates],
            "distanceM": self.distance_m,
            "durationSec": self.duration_sec,
            "method": self.method.value,
            "source": self.source,
        }


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    base_url: str
    requires_key: bool = False
    key: str = ""
    priority: int = 1
    timeout: float = 6.0


class AdapterError(RuntimeError):
    """Base class for failures of a single provider call."""


class AdapterTimeout(AdapterError):
    pass


class AdapterHttpError(AdapterError):
    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(f"HTTP {status_code}: {message}".rstrip(": "))
        self.status_code = status_code


class AdapterParseError(AdapterError):
    pass


class NoRouteFound(AdapterError):
    pass


def snap_endpoints(points: Sequence[GeoPoint], start: GeoPoint, end: GeoPoint) -> Tuple[GeoPoint, ...]:
    """Force the first and last points onto the requested start and end."""
    if len(points) < 2:
        return (start, end)
    return (start, *points[1:-1], end)


class DirectionsProvider:
    """Base adapter: subclasses build the request and parse the payload."""

    method: RouteMethod
    source: str
    profile_map: Dict[Profile, str] = {}

    def __init__(self, descriptor: ProviderDescriptor, *, client: Optional[httpx.AsyncClient] = None) -> None:
        if descriptor.requires_key and not descriptor.key:
            raise ValueError(f"{descriptor.name} requires an API key")
        self.descriptor = descriptor
        self.client = client

    @property
    def name(self) -> str:
        return self.descriptor.name

    def provider_profile(self, profile: Profile | str) -> str:
        return self.profile_map[coerce_profile(profile)]

    def build_request(self, start: GeoPoint, end: GeoPoint, profile: Profile) -> httpx.Request:
        raise NotImplementedError

    def parse_response(self, data: Dict[str, Any]) -> Tuple[List[GeoPoint], float, float]:
        """Return (points, distance_m, duration_sec) for the first route."""
        raise NotImplementedError

    async def fetch_route(
        self,
        start: GeoPoint,
        end: GeoPoint,
        profile: Profile | str = Profile.DRIVE,
        timeout: Optional[float] = None,
    ) -> RouteResult:
        request = self.build_request(start, end, coerce_profile(profile))
        timeout = self.descriptor.timeout if timeout is None else timeout
        logger.debug("%s %s %s (timeout=%.1fs)", self.name, request.method, request.url.path, timeout)
        response = await self._send(request, timeout)
        if response.status_code < 200 or response.status_code >= 300:
            raise AdapterHttpError(response.status_code, response.reason_phrase)
        try:
            data = response.json()
        except ValueError as exc:
            raise AdapterParseError(f"{self.name}: response is not JSON") from exc
        if not isinstance(data, dict):
            raise AdapterParseError(f"{self.name}: expected a JSON object")
        try:
            points, distance, duration = self.parse_response(data)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AdapterParseError(f"{self.name}: unexpected payload ({exc})") from exc
        return RouteResult(
            coordinates=snap_endpoints(points, start, end),
            distance_m=max(0.0, distance),
            duration_sec=max(0.0, duration),
            method=self.method,
            source=self.source,
        )

    async def _send(self, request: httpx.Request, timeout: float) -> httpx.Response:
        request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()
        try:
            if self.client is not None:
                return await self.client.send(request)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await client.send(request)
        except httpx.TimeoutException as exc:
            raise AdapterTimeout(f"{self.name} timed out after {timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise AdapterError(f"{self.name} transport error: {exc}") from exc


def _lnglat(point: GeoPoint) -> str:
    return f"{point.lng},{point.lat}"


class OsrmDirectionsProvider(DirectionsProvider):
    method = RouteMethod.OSRM
    source = "OSRM"
    profile_map = {
        Profile.DRIVE: "driving",
        Profile.BICYCLE: "cycling",
        Profile.WALK: "walking",
    }

    def build_request(self, start: GeoPoint, end: GeoPoint, profile: Profile) -> httpx.Request:
        url = f"{self.descriptor.base_url.rstrip('/')}/{self.provider_profile(profile)}/{_lnglat(start)};{_lnglat(end)}"
        params = {"geometries": "geojson", "overview": "full"}
        return httpx.Request("GET", url, params=params, headers={"Accept": "application/json"})

    def parse_response(self, data: Dict[str, Any]) -> Tuple[List[GeoPoint], float, float]:
        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFound(f"no routes in OSRM response (code={data.get('code')})")
        route = routes[0]
        geometry = route["geometry"]
        # OSRM answers with polyline strings unless geojson was honoured
        if isinstance(geometry, str):
            points = decode_polyline(geometry)
        else:
            points = lnglat_to_points(geometry["coordinates"])
        return points, float(route["distance"]), float(route["duration"])


class MapboxDirectionsProvider(DirectionsProvider):
    method = RouteMethod.MAPBOX
    source = "Mapbox"
    profile_map = {
        Profile.DRIVE: "driving",
        Profile.BICYCLE: "cycling",
        Profile.WALK: "walking",
    }

    def build_request(self, start: GeoPoint, end: GeoPoint, profile: Profile) -> httpx.Request:
        url = f"{self.descriptor.base_url.rstrip('/')}/{self.provider_profile(profile)}/{_lnglat(start)};{_lnglat(end)}"
        params = {"geometries": "geojson", "access_token": self.descriptor.key}
        return httpx.Request("GET", url, params=params)

    def parse_response(self, data: Dict[str, Any]) -> Tuple[List[GeoPoint], float, float]:
        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFound("no routes in Mapbox response")
        route = routes[0]
        points = lnglat_to_points(route["geometry"]["coordinates"])
        return points, float(route["distance"]), float(route["duration"])


class OrsDirectionsProvider(DirectionsProvider):
    method = RouteMethod.ORS
    source = "OpenRouteService"
    profile_map = {
        Profile.DRIVE: "driving-car",
        Profile.BICYCLE: "cycling-regular",
        Profile.WALK: "foot-walking",
    }

    def build_request(self, start: GeoPoint, end: GeoPoint, profile: Profile) -> httpx.Request:
        url = f"{self.descriptor.base_url.rstrip('/')}/{self.provider_profile(profile)}"
        body = {
            "coordinates": [[start.lng, start.lat], [end.lng, end.lat]],
            "format": "geojson",
        }
        headers = {
            "Accept": "application/json",
            "Authorization": self.descriptor.key,
        }
        return httpx.Request("POST", url, json=body, headers=headers)

    def parse_response(self, data: Dict[str, Any]) -> Tuple[List[GeoPoint], float, float]:
        features = data.get("features") or []
        if not features:
            raise NoRouteFound("no features in OpenRouteService response")
        feature = features[0]
        summary = feature["properties"]["summary"]
        points = lnglat_to_points(feature["geometry"]["coordinates"])
        # ORS omits distance/duration for zero-length routes
        return points, float(summary.get("distance", 0.0)), float(summary.get("duration", 0.0))


ADAPTERS = {
    "osrm": OsrmDirectionsProvider,
    "mapbox": MapboxDirectionsProvider,
    "ors": OrsDirectionsProvider,
}
