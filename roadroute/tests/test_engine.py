import asyncio
import random
from typing import List

import httpx
import pytest

from roadroute.cache import RouteCache
from roadroute.routing.directions import (
    AdapterHttpError,
    DirectionsProvider,
    NoRouteFound,
    OsrmDirectionsProvider,
    ProviderDescriptor,
    RouteMethod,
    RouteResult,
)
from roadroute.routing.engine import RouteRequest, RoutingEngine
from roadroute.routing.synth import LocalPathSynthesizer, SynthesisFailed
from roadroute.routing.util import GeoPoint, InvalidCoordinate, Profile

START = GeoPoint(-23.5505, -46.6333)
END = GeoPoint(-22.9068, -43.1729)


class FakeProvider(DirectionsProvider):
    method = RouteMethod.MAPBOX
    source = "Fake"

    def __init__(self, name: str, priority: int, *, error: Exception | None = None, delay: float = 0.0, timeout: float = 1.0) -> None:
        super().__init__(ProviderDescriptor(name=name, base_url="http://fake", priority=priority, timeout=timeout))
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def fetch_route(self, start, end, profile=Profile.DRIVE, timeout=None) -> RouteResult:
        self.calls.append((start, end, profile))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RouteResult((start, GeoPoint(-23.0, -45.0), end), 1000.0, 60.0, self.method, self.name)


class BrokenSynthesizer(LocalPathSynthesizer):
    async def synthesize(self, start, end, profile=Profile.DRIVE):
        raise SynthesisFailed("forced")


def _failing(*names) -> List[FakeProvider]:
    return [FakeProvider(name, i, error=AdapterHttpError(500)) for i, name in enumerate(names, start=1)]


def test_cache_hit_returns_identical_result_without_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            200,
            json={"routes": [{"geometry": {"coordinates": [[-46.6, -23.5], [-43.1, -22.9]]}, "distance": 5, "duration": 1}]},
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    osrm = OsrmDirectionsProvider(ProviderDescriptor("osrm", "https://osrm.test/route/v1"), client=client)
    engine = RoutingEngine([osrm])

    async def run():
        first = await engine.compute_route(START, END, "drive")
        second = await engine.compute_route(START, END, "drive")
        return first, second

    first, second = asyncio.run(run())
    assert first.method is RouteMethod.OSRM
    assert second is first
    assert len(calls) == 1
    assert engine.get_stats()["providers"]["osrm"]["success"] == 1


def test_providers_are_tried_in_priority_order():
    order = []

    class Recording(FakeProvider):
        async def fetch_route(self, *args, **kwargs):
            order.append(self.name)
            return await super().fetch_route(*args, **kwargs)

    third = Recording("third", 3)
    first = Recording("first", 1, error=NoRouteFound("none"))
    second = Recording("second", 2)
    engine = RoutingEngine([third, first, second])

    result = asyncio.run(engine.compute_route(START, END))
    assert order == ["first", "second"]
    assert result.source == "second"
    providers = engine.get_stats()["providers"]
    assert providers["first"]["failed"] == 1
    assert providers["second"]["success"] == 1
    assert providers["third"] == {"success": 0, "failed": 0, "successRate": None}


def test_timeout_counts_as_failure_and_moves_on():
    slow = FakeProvider("slow", 1, delay=1.0, timeout=0.01)
    fast = FakeProvider("fast", 2)
    engine = RoutingEngine([slow, fast])

    result = asyncio.run(engine.compute_route(START, END))
    assert result.source == "fast"
    assert engine.get_stats()["providers"]["slow"]["failed"] == 1


def test_all_providers_failing_falls_back_to_local_synthesizer():
    engine = RoutingEngine(_failing("osrm", "mapbox", "ors"), synthesizer=LocalPathSynthesizer(seed=11))

    result = asyncio.run(engine.compute_route(START, END, Profile.DRIVE))
    assert result.method is RouteMethod.LOCAL
    assert len(result.coordinates) >= 2
    assert result.coordinates[0] == START
    assert result.coordinates[-1] == END
    stats = engine.get_stats()
    assert stats["cache"]["size"] == 1
    assert stats["providers"]["local"]["success"] == 1
    assert all(stats["providers"][name]["failed"] == 1 for name in ("osrm", "mapbox", "ors"))


def test_total_failure_returns_uncached_straight_line():
    engine = RoutingEngine(_failing("osrm"), synthesizer=BrokenSynthesizer())

    result = asyncio.run(engine.compute_route(START, END))
    assert result.coordinates == (START, END)
    assert result.method is RouteMethod.FALLBACK
    assert len(engine.cache) == 0
    assert engine.get_stats()["providers"]["local"]["failed"] == 1


def test_invalid_coordinates_fail_before_any_provider_call():
    provider = FakeProvider("osrm", 1)
    engine = RoutingEngine([provider])
    with pytest.raises(InvalidCoordinate):
        asyncio.run(engine.compute_route((95.0, 0.0), END))
    with pytest.raises(InvalidCoordinate):
        asyncio.run(engine.compute_route(START, (float("nan"), 0.0)))
    assert provider.calls == []


def test_concurrent_identical_requests_share_one_computation():
    provider = FakeProvider("osrm", 1, delay=0.05)
    engine = RoutingEngine([provider])

    async def run():
        return await asyncio.gather(*(engine.compute_route(START, END) for _ in range(4)))

    results = asyncio.run(run())
    assert len(provider.calls) == 1
    assert all(r is results[0] for r in results)
    assert engine.get_stats()["cache"]["inFlight"] == 0


def test_profile_is_part_of_the_cache_key():
    provider = FakeProvider("osrm", 1)
    engine = RoutingEngine([provider])

    async def run():
        await engine.compute_route(START, END, "drive")
        await engine.compute_route(START, END, "walk")

    asyncio.run(run())
    assert [call[2] for call in provider.calls] == [Profile.DRIVE, Profile.WALK]


def test_batch_results_are_correlated_by_id():
    rng = random.Random(0)

    class Jittery(FakeProvider):
        async def fetch_route(self, start, end, profile=Profile.DRIVE, timeout=None):
            await asyncio.sleep(rng.random() / 100)
            return await super().fetch_route(start, end, profile, timeout)

    engine = RoutingEngine([Jittery("osrm", 1)])
    requests = [
        RouteRequest(id=f"link-{i}", start=GeoPoint(-23.0 - i / 10, -46.0), end=GeoPoint(-22.0, -43.0 - i / 10))
        for i in range(5)
    ]

    results = asyncio.run(engine.compute_routes(requests))
    assert [r.id for r in results] == [f"link-{i}" for i in range(5)]
    for req, res in zip(requests, results):
        assert res.path[0] == req.start
        assert res.path[-1] == req.end
        assert res.method is RouteMethod.MAPBOX


def test_batch_accepts_plain_dicts_with_default_profile():
    engine = RoutingEngine(_failing("osrm"), synthesizer=BrokenSynthesizer())
    results = asyncio.run(engine.compute_routes([{"id": "a", "start": (0.0, 0.0), "end": (1.0, 1.0)}]))
    assert results[0].id == "a"
    assert results[0].path == [GeoPoint(0.0, 0.0), GeoPoint(1.0, 1.0)]
    assert results[0].method is RouteMethod.FALLBACK


def test_batch_rejects_invalid_request_before_network():
    provider = FakeProvider("osrm", 1)
    engine = RoutingEngine([provider])
    with pytest.raises(InvalidCoordinate):
        asyncio.run(
            engine.compute_routes(
                [
                    RouteRequest("ok", START, END),
                    RouteRequest("bad", START, GeoPoint(0.0, 200.0)),
                ]
            )
        )
    assert provider.calls == []


def test_unexpected_error_in_one_batch_item_does_not_affect_siblings(monkeypatch):
    engine = RoutingEngine([FakeProvider("osrm", 1)])
    original = engine.compute_route

    async def flaky(start, end, profile=Profile.DRIVE):
        if start == GeoPoint(1.0, 1.0):
            raise RuntimeError("boom")
        return await original(start, end, profile)

    monkeypatch.setattr(engine, "compute_route", flaky)
    results = asyncio.run(
        engine.compute_routes([RouteRequest("bad", GeoPoint(1.0, 1.0), END), RouteRequest("good", START, END)])
    )
    assert results[0].method is RouteMethod.FALLBACK
    assert results[0].path == [GeoPoint(1.0, 1.0), END]
    assert results[1].method is RouteMethod.MAPBOX


def test_clear_cache_reports_removed_entries():
    engine = RoutingEngine([FakeProvider("osrm", 1)], cache=RouteCache(max_entries=10))
    asyncio.run(engine.compute_route(START, END))
    assert engine.clear_cache() == 1
    assert engine.get_stats()["cache"]["size"] == 0


def test_probe_providers_reports_availability_without_touching_stats():
    engine = RoutingEngine([FakeProvider("osrm", 1), FakeProvider("ors", 2, error=AdapterHttpError(401))])
    assert asyncio.run(engine.probe_providers()) == {"osrm": True, "ors": False, "local": True}
    assert engine.get_stats()["providers"]["ors"]["failed"] == 0
    assert len(engine.cache) == 0


@pytest.mark.parametrize("missing", ["id", "start", "end"])
def test_batch_dict_missing_field_is_a_validation_error(missing):
    provider = FakeProvider("osrm", 1)
    engine = RoutingEngine([provider])
    request = {"id": "a", "start": START, "end": END}
    del request[missing]
    with pytest.raises(ValueError, match=missing):
        asyncio.run(engine.compute_routes([request]))
    assert provider.calls == []
