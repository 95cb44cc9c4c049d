"""Route orchestration across providers, the local synthesizer and the cache."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from ..cache import ProviderStats, RouteCache, RouteCacheKey
from .directions import DirectionsProvider, RouteMethod, RouteResult
from .synth import LocalPathSynthesizer
from .util import (
    GeoPoint,
    Profile,
    coerce_profile,
    estimate_duration_sec,
    haversine_m,
    validate_point,
)

logger = logging.getLogger(__name__)

LOCAL_STATS_NAME = "local"

# fixed pair used by probe_providers
PROBE_START = GeoPoint(-23.5505, -46.6333)  # São Paulo
PROBE_END = GeoPoint(-22.9068, -43.1729)  # Rio de Janeiro


class AllProvidersExhausted(RuntimeError):
    """Every configured provider failed for a request."""


@dataclass(frozen=True)
class RouteRequest:
    id: str
    start: GeoPoint
    end: GeoPoint
    profile: Profile = Profile.DRIVE


@dataclass(frozen=True)
class BatchRouteResult:
    id: str
    path: List[GeoPoint] = field(default_factory=list)
    method: Optional[RouteMethod] = None
    source: Optional[str] = None


def straight_line(start: GeoPoint, end: GeoPoint, profile: Profile) -> RouteResult:
    distance = haversine_m(start, end)
    return RouteResult(
        coordinates=(start, end),
        distance_m=distance,
        duration_sec=estimate_duration_sec(distance, profile),
        method=RouteMethod.FALLBACK,
        source="Straight line",
    )


class RoutingEngine:
    """Owns the provider chain, the route cache and the usage counters."""

    def __init__(
        self,
        providers: Iterable[DirectionsProvider] = (),
        *,
        synthesizer: Optional[LocalPathSynthesizer] = None,
        cache: Optional[RouteCache] = None,
        stats: Optional[ProviderStats] = None,
    ) -> None:
        self.providers: List[DirectionsProvider] = sorted(providers, key=lambda p: p.descriptor.priority)
        self.synthesizer = synthesizer or LocalPathSynthesizer()
        self.cache = cache if cache is not None else RouteCache()
        self.stats = stats or ProviderStats()
        for provider in self.providers:
            self.stats.register(provider.name)
        self.stats.register(LOCAL_STATS_NAME)
        self._inflight: Dict[RouteCacheKey, "asyncio.Task[RouteResult]"] = {}

    async def compute_route(
        self,
        start: Sequence[float],
        end: Sequence[float],
        profile: Profile | str | None = Profile.DRIVE,
    ) -> RouteResult:
        key = RouteCacheKey(validate_point(start), validate_point(end), coerce_profile(profile))
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("route cache hit %s (%s)", key.serialise(), cached.source)
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_uncached(key))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _compute_uncached(self, key: RouteCacheKey) -> RouteResult:
        try:
            result = await self._try_providers(key)
        except AllProvidersExhausted:
            logger.info("all providers failed for %s; using local synthesizer", key.serialise())
            try:
                result = await self.synthesizer.synthesize(key.start, key.end, key.profile)
            except Exception as exc:
                logger.error("local synthesis failed for %s (%s); returning straight line", key.serialise(), exc)
                self.stats.record_failure(LOCAL_STATS_NAME)
                return straight_line(key.start, key.end, key.profile)
            self.stats.record_success(LOCAL_STATS_NAME)
        self.cache.store(key, result)
        return result

    async def _try_providers(self, key: RouteCacheKey) -> RouteResult:
        for provider in self.providers:
            timeout = provider.descriptor.timeout
            try:
                result = await asyncio.wait_for(
                    provider.fetch_route(key.start, key.end, key.profile, timeout),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %.1fs", provider.name, timeout)
                self.stats.record_failure(provider.name)
                continue
            except Exception as exc:
                logger.warning("%s failed (%s); trying next provider", provider.name, exc)
                self.stats.record_failure(provider.name)
                continue
            logger.info("route via %s (%d points)", provider.name, len(result.coordinates))
            self.stats.record_success(provider.name)
            return result
        raise AllProvidersExhausted(key.serialise())

    async def compute_routes(self, requests: Iterable[RouteRequest | Dict[str, object]]) -> List[BatchRouteResult]:
        prepared = [self._prepare(req) for req in requests]
        logger.info("computing %d routes concurrently", len(prepared))
        results = await asyncio.gather(*(self._compute_one(req) for req in prepared))
        counts: Dict[str, int] = {}
        for item in results:
            label = item.method.value if item.method else "unknown"
            counts[label] = counts.get(label, 0) + 1
        logger.info("batch complete: %s", counts)
        return list(results)

    async def _compute_one(self, req: RouteRequest) -> BatchRouteResult:
        try:
            result = await self.compute_route(req.start, req.end, req.profile)
        except Exception:
            logger.exception("route %s failed; returning straight line", req.id)
            result = straight_line(req.start, req.end, req.profile)
        return BatchRouteResult(id=req.id, path=list(result.coordinates), method=result.method, source=result.source)

    @staticmethod
    def _prepare(req: RouteRequest | Dict[str, object]) -> RouteRequest:
        if isinstance(req, RouteRequest):
            return RouteRequest(req.id, validate_point(req.start), validate_point(req.end), coerce_profile(req.profile))
        missing = [name for name in ("id", "start", "end") if req.get(name) is None]
        if missing:
            raise ValueError(f"route request missing {', '.join(missing)}: {req!r}")
        return RouteRequest(
            id=str(req["id"]),
            start=validate_point(req["start"]),  # type: ignore[arg-type]
            end=validate_point(req["end"]),  # type: ignore[arg-type]
            profile=coerce_profile(req.get("profile")),  # type: ignore[arg-type]
        )

    def clear_cache(self) -> int:
        removed = self.cache.clear()
        logger.info("route cache cleared: %d entries removed", removed)
        return removed

    def get_stats(self) -> Dict[str, object]:
        return {
            "cache": {
                "size": len(self.cache),
                "maxEntries": self.cache.max_entries,
                "ttlSeconds": self.cache.ttl_seconds,
                "inFlight": len(self._inflight),
            },
            "providers": self.stats.snapshot(),
        }

    async def probe_providers(self) -> Dict[str, bool]:
        """Call every provider once and report which ones answered."""
        results: Dict[str, bool] = {}
        for provider in self.providers:
            try:
                await asyncio.wait_for(
                    provider.fetch_route(PROBE_START, PROBE_END, Profile.DRIVE, provider.descriptor.timeout),
                    timeout=provider.descriptor.timeout,
                )
                results[provider.name] = True
            except Exception as exc:
                logger.warning("%s unavailable: %s", provider.name, exc)
                results[provider.name] = False
        results[LOCAL_STATS_NAME] = True
        return results
