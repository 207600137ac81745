from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from typing_extensions import Annotated

from app.cache.layer import CacheLayer
from app.database import Database
from app.dependencies import get_cache, get_database

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    database: Annotated[Database, Depends(get_database)],
    cache: Annotated[CacheLayer, Depends(get_cache)],
):
    """Report database and cache connectivity; 503 if either is down"""
    db_ok = await database.ping()
    cache_ok = await cache.ping()
    healthy = db_ok and cache_ok

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "OK" if healthy else "ERROR",
            "database": "connected" if db_ok else "disconnected",
            "cache": "connected" if cache_ok else "disconnected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cache_stats": cache.get_stats(),
        },
    )
