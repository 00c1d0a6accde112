"""Liveness and readiness endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from src.idbridge.api.http.app_data import ApplicationDependencies
from src.idbridge.api.http.deps import get_app_dependencies
from src.idbridge.core.storage.session_storage import RedisSessionStorage

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness check; does not touch dependencies."""
    return {"status": "healthy"}


@router.get("/ready", response_model=None)
async def readiness(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness check: 200 when the database and session storage respond, else 503."""
    db_healthy = await run_in_threadpool(app_deps.database_service.health_check)

    storage = app_deps.session_storage
    if isinstance(storage, RedisSessionStorage):
        storage_healthy = await storage.ping()
        storage_type = "redis"
    else:
        storage_healthy = True
        storage_type = "in-memory"

    body = {
        "status": "ready" if db_healthy and storage_healthy else "not_ready",
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
            "session_storage": {
                "status": "healthy" if storage_healthy else "unhealthy",
                "type": storage_type,
            },
        },
    }
    if body["status"] != "ready":
        return JSONResponse(status_code=503, content=body)
    return body
