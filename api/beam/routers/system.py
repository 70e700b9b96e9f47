"""System endpoints (health)."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache import get_redis_client
from ..deps import get_db
from ..realtime.publisher import realtime

router = APIRouter(prefix="", tags=["System"])
logger = logging.getLogger(__name__)

# Global startup time for uptime calculation
_STARTUP_TIME = time.time()


@router.get("/healthz")
def get_health(db: Session = Depends(get_db)) -> dict:
    """
    Liveness & minimal readiness check.

    The database is required; Redis and the realtime broker are reported but
    optional since both degrade gracefully.
    """
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "uptime_s": round(time.time() - _STARTUP_TIME, 1),
        "database": database,
        "redis": "ok" if get_redis_client() else "unavailable",
        "realtime": "ok" if realtime.is_initialized else "disabled",
    }
