"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from taleforge.api.deps import Network, Store
from taleforge.core.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    network: str


@router.get("/health", response_model=HealthResponse)
async def health_check(store: Store, network: Network) -> HealthResponse:
    """Check application health status.

    Returns:
        Health status including local database and network reachability.
    """
    settings = get_settings()

    db_status = "healthy"
    try:
        async with store.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        version=settings.app_version,
        database=db_status,
        network=network.status.value,
    )


@router.get("/ready")
async def readiness_check() -> dict:
    """Readiness probe.

    Returns:
        Simple ready status.
    """
    return {"ready": True}


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe."""
    return {"alive": True}
