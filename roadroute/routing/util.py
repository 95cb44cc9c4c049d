"""Geometry helpers shared by the providers, the synthesizer and the engine."""
from __future__ import annotations

import math
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Sequence

EARTH_RADIUS_M = 6371000.0


class GeoPoint(NamedTuple):
    lat: float
    lng: float


class Profile(str, Enum):
    DRIVE = "drive"
    BICYCLE = "bicycle"
    WALK = "walk"


# average speeds in km/h, used only for locally estimated durations
SPEED_KMH: Dict[Profile, float] = {
    Profile.DRIVE: 55.0,
    Profile.BICYCLE: 18.0,
    Profile.WALK: 5.0,
}


class InvalidCoordinate(ValueError):
    """Raised for NaN, infinite or out-of-range coordinates."""


def validate_point(point: Sequence[float]) -> GeoPoint:
    try:
        lat, lng = float(point[0]), float(point[1])
    except (TypeError, ValueError, IndexError) as exc:
        raise InvalidCoordinate(f"not a (lat, lng) pair: {point!r}") from exc
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinate(f"non-finite coordinate: ({lat}, {lng})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"latitude out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"longitude out of range: {lng}")
    return GeoPoint(lat, lng)


def normalize_point(lat: float, lng: float) -> GeoPoint:
    """Clamp latitude to the poles and wrap longitude across the antimeridian."""
    lat = max(-90.0, min(90.0, lat))
    if not -180.0 <= lng <= 180.0:
        lng = (lng + 180.0) % 360.0 - 180.0
    return GeoPoint(lat, lng)


def coerce_profile(profile: Profile | str | None) -> Profile:
    if profile is None:
        return Profile.DRIVE
    if isinstance(profile, Profile):
        return profile
    try:
        return Profile(str(profile).lower())
    except ValueError as exc:
        raise ValueError(f"unknown profile {profile!r}") from exc


def haversine_m(a: Sequence[float], b: Sequence[float]) -> float:
    (lat1, lon1), (lat2, lon2) = a, b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def path_distance_m(points: Sequence[Sequence[float]]) -> float:
    total = 0.0
    for prev, curr in zip(points, points[1:]):
        total += haversine_m(prev, curr)
    return total


def estimate_duration_sec(distance_m: float, profile: Profile | str) -> float:
    """Whole seconds needed to cover ``distance_m`` at the profile's average speed."""
    speed = SPEED_KMH[coerce_profile(profile)]
    return float(round(distance_m / 1000.0 / speed * 3600))


def planar_distance_deg(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def bezier_point(
    t: float,
    p0: Sequence[float],
    p1: Sequence[float],
    p2: Sequence[float],
    p3: Sequence[float],
) -> GeoPoint:
    u = 1.0 - t
    b0 = u * u * u
    b1 = 3 * u * u * t
    b2 = 3 * u * t * t
    b3 = t * t * t
    lat = b0 * p0[0] + b1 * p1[0] + b2 * p2[0] + b3 * p3[0]
    lng = b0 * p0[1] + b1 * p1[1] + b2 * p2[1] + b3 * p3[1]
    return GeoPoint(lat, lng)


def lnglat_to_points(coords: Iterable[Sequence[float]]) -> List[GeoPoint]:
    """Convert GeoJSON ``[lng, lat]`` pairs into GeoPoints."""
    return [GeoPoint(float(pair[1]), float(pair[0])) for pair in coords]


def encode_polyline(points: Sequence[Sequence[float]], precision: int = 5) -> str:
    factor = 10 ** precision
    output: List[str] = []
    prev_lat = 0
    prev_lng = 0
    for lat, lng in points:
        lat_i = int(round(lat * factor))
        lng_i = int(round(lng * factor))
        output.append(_encode_value(lat_i - prev_lat))
        output.append(_encode_value(lng_i - prev_lng))
        prev_lat, prev_lng = lat_i, lng_i
    return "".join(output)


def _encode_value(value: int) -> str:
    value = value << 1
    if value < 0:
        value = ~value
    result = []
    while value >= 0x20:
        result.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    result.append(chr(value + 63))
    return "".join(result)


def decode_polyline(encoded: str, precision: int = 5) -> List[GeoPoint]:
    factor = 10 ** precision
    points: List[GeoPoint] = []
    index = 0
    lat = 0
    lng = 0
    while index < len(encoded):
        delta_lat, index = _decode_value(encoded, index)
        delta_lng, index = _decode_value(encoded, index)
        lat += delta_lat
        lng += delta_lng
        points.append(GeoPoint(lat / factor, lng / factor))
    return points


def _decode_value(encoded: str, index: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError("truncated polyline")
        chunk = ord(encoded[index]) - 63
        index += 1
        result |= (chunk & 0x1F) << shift
        shift += 5
        if chunk < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index
