"""Offline path synthesizer used when every directions provider has failed.

The output only looks like a road: waypoints are interpolated between the two
endpoints, nudged toward nearby reference hubs, jittered, and smoothed with
cubic Bezier segments. Distances derived from it are estimates for display,
not routing data.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import List, Optional, Sequence, Tuple

from .directions import RouteMethod, RouteResult
from .util import (
    GeoPoint,
    Profile,
    bezier_point,
    coerce_profile,
    estimate_duration_sec,
    normalize_point,
    path_distance_m,
    planar_distance_deg,
)

logger = logging.getLogger(__name__)

# major Brazilian population centres
REFERENCE_HUBS: Tuple[GeoPoint, ...] = (
    GeoPoint(-23.5505, -46.6333),  # São Paulo
    GeoPoint(-22.9068, -43.1729),  # Rio de Janeiro
    GeoPoint(-15.8267, -47.9218),  # Brasília
    GeoPoint(-19.8197, -43.9542),  # Belo Horizonte
    GeoPoint(-30.0346, -51.2177),  # Porto Alegre
    GeoPoint(-25.4244, -49.2654),  # Curitiba
    GeoPoint(-8.0476, -34.8770),  # Recife
    GeoPoint(-12.9714, -38.5014),  # Salvador
    GeoPoint(-3.7172, -38.5436),  # Fortaleza
    GeoPoint(-16.6869, -49.2648),  # Goiânia
)

KM_PER_DEGREE = 111.32
MIN_BASE_POINTS = 15
MAX_BASE_POINTS = 35
HUB_RADIUS_DEG = 2.0
HUB_PULL = 0.3
FULL_DETOUR_SPAN_DEG = 2.0
CONTROL_JITTER_DEG = 0.05


class SynthesisFailed(RuntimeError):
    """Raised when a local path cannot be produced."""


class LocalPathSynthesizer:
    def __init__(
        self,
        hubs: Sequence[GeoPoint] = REFERENCE_HUBS,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        simulated_latency: Optional[Tuple[float, float]] = None,
    ) -> None:
        self.hubs = tuple(GeoPoint(float(h[0]), float(h[1])) for h in hubs)
        self.rng = rng if rng is not None else random.Random(seed)
        self.simulated_latency = simulated_latency

    async def synthesize(self, start: GeoPoint, end: GeoPoint, profile: Profile | str = Profile.DRIVE) -> RouteResult:
        if self.simulated_latency:
            lo, hi = self.simulated_latency
            await asyncio.sleep(lo + self.rng.random() * max(0.0, hi - lo))
        try:
            profile = coerce_profile(profile)
            path = self.build_path(start, end)
            distance = path_distance_m(path)
            if not math.isfinite(distance):
                raise ValueError("non-finite synthesized distance")
            duration = estimate_duration_sec(distance, profile)
        except (ArithmeticError, ValueError, TypeError, KeyError) as exc:
            raise SynthesisFailed(f"local synthesis failed: {exc}") from exc
        logger.debug("synthesized %d points over %.0fm", len(path), distance)
        return RouteResult(
            coordinates=tuple(path),
            distance_m=distance,
            duration_sec=duration,
            method=RouteMethod.LOCAL,
            source="Local synthesizer",
        )

    def build_path(self, start: GeoPoint, end: GeoPoint) -> List[GeoPoint]:
        span = planar_distance_deg(start, end)
        if span == 0:
            return [start, end]
        base_points = max(MIN_BASE_POINTS, min(MAX_BASE_POINTS, int(span * KM_PER_DEGREE / 20)))
        scale = min(1.0, span / FULL_DETOUR_SPAN_DEG)
        waypoints = self.waypoints(start, end, base_points // 5, scale)
        return self.smooth([start, *waypoints, end], base_points, scale)

    def waypoints(self, start: GeoPoint, end: GeoPoint, count: int, scale: float) -> List[GeoPoint]:
        points: List[GeoPoint] = []
        for i in range(1, count + 1):
            t = i / (count + 1)
            lat = start.lat + (end.lat - start.lat) * t
            lng = start.lng + (end.lng - start.lng) * t

            hub, dist = self._nearest_hub(lat, lng)
            if hub is not None and dist < HUB_RADIUS_DEG:
                influence = HUB_PULL * (1 - dist / HUB_RADIUS_DEG)
                lat += (hub.lat - lat) * influence
                lng += (hub.lng - lng) * influence

            variation = (0.1 + self.rng.random() * 0.2) * scale
            angle = self.rng.random() * 2 * math.pi
            lat += math.sin(angle) * variation
            lng += math.cos(angle) * variation
            points.append(GeoPoint(lat, lng))
        return points

    def smooth(self, chain: Sequence[GeoPoint], total_points: int, scale: float) -> List[GeoPoint]:
        if len(chain) < 2:
            return list(chain)
        per_segment = max(4, total_points // (len(chain) - 1))
        smoothed: List[GeoPoint] = []
        for curr, nxt in zip(chain, chain[1:]):
            c1 = self._control_point(curr, nxt, 0.25, scale)
            c2 = self._control_point(curr, nxt, 0.75, scale)
            for j in range(per_segment):
                # samples may cross a pole or the antimeridian
                smoothed.append(normalize_point(*bezier_point(j / per_segment, curr, c1, c2, nxt)))
        smoothed.append(chain[-1])
        return smoothed

    def _control_point(self, a: GeoPoint, b: GeoPoint, fraction: float, scale: float) -> GeoPoint:
        return GeoPoint(
            a.lat + (b.lat - a.lat) * fraction + (self.rng.random() - 0.5) * CONTROL_JITTER_DEG * scale,
            a.lng + (b.lng - a.lng) * fraction + (self.rng.random() - 0.5) * CONTROL_JITTER_DEG * scale,
        )

    def _nearest_hub(self, lat: float, lng: float) -> Tuple[Optional[GeoPoint], float]:
        best: Optional[GeoPoint] = None
        best_dist = math.inf
        for hub in self.hubs:
            dist = planar_distance_deg((lat, lng), hub)
            if dist < best_dist:
                best, best_dist = hub, dist
        return best, best_dist
