"""Health probes for the API and its two backing stores."""

import asyncio
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from src.api.deps import Documents, VectorIndex
from src.core.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    checks: dict[str, str] | None = None


async def _probe(check) -> tuple[bool, str]:
    try:
        ok = await check
    except Exception as e:
        return False, f"unhealthy: {e!s}"
    return (True, "healthy") if ok else (False, "unhealthy: not ready")


@router.get("/health/live", response_model=HealthResponse)
async def liveness():
    """Liveness probe. Returns 200 if the process is alive."""
    return HealthResponse(
        status="alive",
        timestamp=datetime.now(UTC).isoformat(),
        version=get_settings().app_version,
    )


@router.get("/health/ready", response_model=HealthResponse)
async def readiness(documents: Documents, vectors: VectorIndex):
    """Readiness probe.

    Ready when Redis answers a ping and the chunk collection exists.
    """
    (redis_ok, redis_status), (qdrant_ok, qdrant_status) = await asyncio.gather(
        _probe(documents.ping()),
        _probe(vectors.collection_ready()),
    )
    checks = {"redis": redis_status, "qdrant": qdrant_status}

    if not (redis_ok and qdrant_ok):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return HealthResponse(
        status="ready",
        timestamp=datetime.now(UTC).isoformat(),
        version=get_settings().app_version,
        checks=checks,
    )
