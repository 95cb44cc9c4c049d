"""In-process caching and usage counters for route lookups."""
from __future__ import annotations

import copy
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .routing.directions import RouteResult
from .routing.util import GeoPoint, Profile


@dataclass(frozen=True)
class RouteCacheKey:
    start: GeoPoint
    end: GeoPoint
    profile: Profile

    def serialise(self) -> str:
        return (
            f"{self.profile.value}:{self.start.lat},{self.start.lng}"
            f"->{self.end.lat},{self.end.lng}"
        )


class RouteCache:
    """Bounded LRU map of computed routes, optionally expiring entries.

    Keys are coordinate-exact; no rounding or snapping is applied, so two
    requests only share an entry when their floats are identical.
    """

    def __init__(
        self,
        *,
        max_entries: int = 1024,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds if ttl_seconds else None
        self._clock = clock
        self._entries: "OrderedDict[RouteCacheKey, Tuple[RouteResult, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self._live_entry(key) is not None

    def get(self, key: RouteCacheKey) -> Optional[RouteResult]:
        result = self._live_entry(key)
        if result is not None:
            self._entries.move_to_end(key)
        return result

    def _live_entry(self, key: object) -> Optional[RouteResult]:
        entry = self._entries.get(key)  # type: ignore[call-overload]
        if entry is None:
            return None
        result, stored_at = entry
        if self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]  # type: ignore[arg-type]
            return None
        return result

    def store(self, key: RouteCacheKey, result: RouteResult) -> None:
        self._entries[key] = (result, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed


class ProviderStats:
    def __init__(self) -> None:
        self._counts: Dict[str, Dict[str, int]] = {}

    def register(self, name: str) -> None:
        self._counts.setdefault(name, {"success": 0, "failed": 0})

    def record_success(self, name: str) -> None:
        self.register(name)
        self._counts[name]["success"] += 1

    def record_failure(self, name: str) -> None:
        self.register(name)
        self._counts[name]["failed"] += 1

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        out: Dict[str, Dict[str, object]] = {}
        for name, counts in copy.deepcopy(self._counts).items():
            total = counts["success"] + counts["failed"]
            rate = round(counts["success"] / total * 100, 1) if total else None
            out[name] = {**counts, "successRate": rate}
        return out
