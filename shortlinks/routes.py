"""FastAPI route definitions for the short-link API.

This module is a thin boundary: it parses requests, resolves the caller's
identity, calls one engine component, and lets the ``LinkError`` handler in
``shortlinks.main`` translate typed failures into status codes.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten           (Bearer token)
        ├─ LinkCreate (request body)
        └─ LinkResult (201), 401, 422 or 500

    GET  /api/stats/:short_code (Bearer token)
        └─ StatsSnapshot (200), 401, 403 or 404

    GET  /:short_code
        └─ 302 Redirect or 404

Key Behaviours
===============
- NotFound, Expired and Inactive all surface as 404.
- Forbidden surfaces as 403; every other engine failure as 500.
- Redirects never wait on click recording.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from shortlinks.dependencies import (
    RequestContext,
    ServiceManager,
    get_current_user,
    get_request_context,
    get_service_manager,
)
from shortlinks.enums import HealthStatus
from shortlinks.errors import LinkError
from shortlinks.schemas import HealthResponse, LinkCreate, LinkResult, StatsSnapshot

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(services: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await services.store.ping()
    except LinkError as e:
        services.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await services.cache.ping()
    except LinkError as e:
        services.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/shorten", response_model=LinkResult, status_code=201, tags=["urls"])
async def shorten_url(
    payload: LinkCreate,
    user_id: str = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
) -> LinkResult:
    ctx.logger.info(
        "URL shortening requested",
        extra={"operation": "allocate", "custom_alias": payload.custom_alias},
    )
    result = await ctx.services.allocator.allocate(
        payload.long_url,
        owner_id=payload.owner_id or user_id,
        verified_owner_id=user_id,
        password=payload.password,
        custom_alias=payload.custom_alias,
    )
    ctx.logger.info(
        f"URL shortened: {result.short_code}",
        extra={"operation": "allocate", "short_code": result.short_code, "duration_ms": ctx.get_duration()},
    )
    return result


@router.get("/api/stats/{short_code}", response_model=StatsSnapshot, tags=["urls"])
async def get_stats(
    short_code: str,
    user_id: str = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
) -> StatsSnapshot:
    ctx.logger.info(f"Stats requested for short code: {short_code}")
    return await ctx.services.stats.get_stats(short_code, user_id)


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
) -> RedirectResponse:
    destination = await ctx.services.resolver.resolve(short_code, ctx.metadata)
    ctx.logger.info(
        f"Redirect: {short_code}",
        extra={"operation": "redirect", "short_code": short_code, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=destination, status_code=302)
