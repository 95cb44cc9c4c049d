"""Factory helpers for the directions providers and the routing engine."""
from __future__ import annotations

import logging
import os
from typing import List, Optional

import httpx

from .cache import RouteCache
from .routing.directions import ADAPTERS, DirectionsProvider, ProviderDescriptor
from .routing.engine import RoutingEngine
from .routing.synth import LocalPathSynthesizer

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "osrm": "https://router.project-osrm.org/route/v1",
    "mapbox": "https://api.mapbox.com/directions/v5/mapbox",
    "ors": "https://api.openrouteservice.org/v2/directions",
}

_KEY_ENV = {
    "mapbox": "MAPBOX_ACCESS_TOKEN",
    "ors": "ORS_API_KEY",
}


def _provider_key(name: str) -> str:
    env = _KEY_ENV.get(name)
    return os.environ.get(env, "") if env else ""


def build_descriptors() -> List[ProviderDescriptor]:
    """Descriptors for the enabled providers, in ``ROUTING_PROVIDERS`` order.

    Providers that need a key are skipped when none is configured.
    """
    names = [n.strip().lower() for n in os.environ.get("ROUTING_PROVIDERS", "osrm,mapbox,ors").split(",") if n.strip()]
    timeout = float(os.environ.get("ROUTING_TIMEOUT_SEC", "6"))
    descriptors: List[ProviderDescriptor] = []
    for priority, name in enumerate(names, start=1):
        if name not in ADAPTERS:
            logger.warning("unknown routing provider %r ignored", name)
            continue
        requires_key = name in _KEY_ENV
        key = _provider_key(name)
        if requires_key and not key:
            logger.info("%s disabled: %s not set", name, _KEY_ENV[name])
            continue
        base_url = os.environ.get(f"{name.upper()}_BASE_URL", DEFAULT_BASE_URLS[name])
        descriptors.append(
            ProviderDescriptor(
                name=name,
                base_url=base_url,
                requires_key=requires_key,
                key=key,
                priority=priority,
                timeout=timeout,
            )
        )
    return descriptors


def build_providers(client: Optional[httpx.AsyncClient] = None) -> List[DirectionsProvider]:
    return [ADAPTERS[d.name](d, client=client) for d in build_descriptors()]


def build_cache() -> RouteCache:
    max_entries = int(os.environ.get("ROUTE_CACHE_MAX_ENTRIES", "1024"))
    ttl_min = float(os.environ.get("ROUTE_CACHE_TTL_MIN", "0"))
    return RouteCache(max_entries=max_entries, ttl_seconds=ttl_min * 60 if ttl_min > 0 else None)


def build_synthesizer() -> LocalPathSynthesizer:
    seed = os.environ.get("LOCAL_ROUTE_SEED")
    return LocalPathSynthesizer(seed=int(seed) if seed else None)


def build_engine(client: Optional[httpx.AsyncClient] = None) -> RoutingEngine:
    return RoutingEngine(
        build_providers(client),
        synthesizer=build_synthesizer(),
        cache=build_cache(),
    )
