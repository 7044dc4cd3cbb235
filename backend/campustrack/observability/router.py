"""Observability API endpoints.

Provides metrics and health checks for monitoring.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Observability"])


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    include_in_schema=False,  # Hide from OpenAPI docs
)
def metrics():
    """Expose Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Returns health status of the database connection",
    status_code=200,
)
def health_check(db: Session = Depends(get_db)):
    """Check database connectivity.

    Returns 200 OK if the database answers, 503 otherwise.
    """
    start = time.time()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return JSONResponse(
            content={
                "status": "unhealthy",
                "components": {"database": {"status": "unhealthy", "message": str(e)}},
            },
            status_code=503,
        )

    latency_ms = round((time.time() - start) * 1000, 2)
    return {
        "status": "healthy",
        "components": {
            "database": {
                "status": "healthy",
                "message": "Database connection OK",
                "latency_ms": latency_ms,
            }
        },
    }
