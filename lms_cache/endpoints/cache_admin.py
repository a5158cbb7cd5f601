from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Optional
import logging

from lms_cache.core.config import settings
from lms_cache.core.constants import FetchStatus
from lms_cache.core.exceptions import OfflineError, RemoteFailure
from lms_cache.middleware.logging import record_cache_outcome
from lms_cache.schemas.response import APIResponse, CacheHealth, StoreHealth
from lms_cache.store.container import StateContainer
from lms_cache.store.entity_store import dump_entity

logger = logging.getLogger(__name__)

router = APIRouter()

def get_container(request: Request) -> StateContainer:
    return request.app.state.container

@router.get("/cache/stats")
async def get_cache_stats(container: StateContainer = Depends(get_container)) -> APIResponse:
    """Per-store sizes, freshness and index statistics"""
    return APIResponse(message="Cache statistics retrieved", data=container.stats())

@router.get("/cache/health")
async def cache_health(
    probe: bool = False,
    container: StateContainer = Depends(get_container)
) -> APIResponse:
    if probe and settings.SUPABASE_URL:
        await container.connectivity.probe(settings.SUPABASE_URL, timeout=settings.REQUEST_TIMEOUT)

    stores = {}
    for name in container.names:
        stats = container.store(name).stats()
        stores[name] = StoreHealth(
            loaded=stats["loaded"], fresh=stats["fresh"], loading=stats["loading"], error=stats["error"]
        )
    failing = [name for name, health in stores.items() if health.error]
    online = container.connectivity.is_online()

    health = CacheHealth(
        status="healthy" if online and not failing else "degraded",
        online=online,
        snapshots=type(container.snapshots).__name__ if container.snapshots is not None else None,
        stores=stores,
        failing=failing,
    )
    return APIResponse(message=f"Cache is {health.status}", data=health.model_dump())

@router.get("/cache/stores/{name}")
async def get_store(
    name: str,
    request: Request,
    include_items: bool = False,
    container: StateContainer = Depends(get_container)
) -> APIResponse:
    store = container.store(name)
    data = store.stats()
    if data["fresh"]:
        outcome = "FRESH"
    else:
        outcome = "STALE" if data["size"] else "EMPTY"
    record_cache_outcome(request, name, outcome, scope=data["scope_key"])
    if include_items:
        data["items"] = [dump_entity(item) for item in store.collection]
        data["quarantined_rows"] = [
            {"row": row.row, "reason": row.reason} for row in store.entry.quarantined
        ]
    return APIResponse(message=f"Store {name} retrieved", data=data)

@router.post("/cache/stores/{name}/invalidate")
async def invalidate_store(
    name: str,
    request: Request,
    scope: Optional[str] = None,
    container: StateContainer = Depends(get_container)
) -> APIResponse:
    store = container.store(name)
    store.invalidate(scope)
    record_cache_outcome(request, name, "INVALIDATED", scope=scope)
    return APIResponse(message=f"Cache invalidated for {name}", data=store.stats())

@router.post("/cache/stores/{name}/refresh")
async def refresh_store(
    name: str,
    request: Request,
    scope: Optional[str] = None,
    container: StateContainer = Depends(get_container)
) -> APIResponse:
    """Force a refetch, bypassing freshness (an in-flight fetch is still respected)"""
    store = container.store(name)
    try:
        result = await store.fetch(scope, force=True)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    outcome = "MISS" if result.status is FetchStatus.FETCHED else result.status.value.upper()
    record_cache_outcome(request, name, outcome, scope=scope)
    if result.status is FetchStatus.FAILED:
        if not container.connectivity.is_online():
            raise OfflineError(result.error)
        raise RemoteFailure(result.error)

    return APIResponse(
        message=f"Refreshed {name}",
        data={"status": result.status.value, "count": len(result.items)}
    )

@router.post("/cache/reset")
async def reset_cache(request: Request, container: StateContainer = Depends(get_container)) -> APIResponse:
    """Log out: drop every store, the session and persisted snapshots"""
    await container.logout()
    record_cache_outcome(request, "*", "RESET")
    logger.info("Cache reset through admin API")
    return APIResponse(message="All stores reset", data={"stores": container.names})
