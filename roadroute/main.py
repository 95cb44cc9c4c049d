"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException

from .providers import build_engine
from .routing.directions import RouteResult
from .routing.engine import RouteRequest, RoutingEngine
from .schemas import BatchRouteOut, BatchRouteQuery, CacheCleared, RouteOut, RouteQuery, StatsOut

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()  # so .env works

app = FastAPI(title="roadroute API")


@lru_cache(maxsize=1)
def get_engine() -> RoutingEngine:
    return build_engine()


def _route_out(result: RouteResult) -> RouteOut:
    return RouteOut(**result.to_dict())


@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


@app.post("/route", response_model=RouteOut)
async def route(query: RouteQuery, engine: RoutingEngine = Depends(get_engine)) -> RouteOut:
    try:
        result = await engine.compute_route(query.start.as_tuple(), query.end.as_tuple(), query.profile)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _route_out(result)


@app.post("/routes", response_model=List[BatchRouteOut])
async def routes(query: BatchRouteQuery, engine: RoutingEngine = Depends(get_engine)) -> List[BatchRouteOut]:
    requests = [
        RouteRequest(id=item.id, start=item.start.as_tuple(), end=item.end.as_tuple(), profile=item.profile)
        for item in query.routes
    ]
    try:
        results = await engine.compute_routes(requests)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        BatchRouteOut(
            id=r.id,
            path=[[p.lat, p.lng] for p in r.path],
            method=r.method.value if r.method else None,
            source=r.source,
        )
        for r in results
    ]


@app.delete("/cache", response_model=CacheCleared)
def clear_cache(engine: RoutingEngine = Depends(get_engine)) -> CacheCleared:
    return CacheCleared(cleared=engine.clear_cache())


@app.get("/stats", response_model=StatsOut)
def stats(engine: RoutingEngine = Depends(get_engine)) -> StatsOut:
    return StatsOut(**engine.get_stats())


@app.get("/providers/health")
async def providers_health(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, bool]:
    return await engine.probe_providers()
