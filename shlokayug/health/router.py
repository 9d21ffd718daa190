"""Health check endpoints."""

from fastapi import APIRouter, Request, Response, status

from shlokayug.config import get_settings
from shlokayug.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, str | bool | None]:
    """Readiness probe - ready once progress storage is connected.

    Answers 503 while the progress service is not wired or its Cassandra
    session is gone.
    """
    settings = get_settings()
    storage = getattr(request.app.state, "storage", None)
    service = getattr(request.app.state, "progress_service", None)

    if storage == "cassandra":
        connected = AsyncCassandraConnection.is_connected()
    else:
        connected = storage == "memory"

    ready = service is not None and connected
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ready" if ready else "unavailable",
        "storage": storage,
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
