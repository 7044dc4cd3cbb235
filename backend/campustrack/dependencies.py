"""FastAPI dependencies shared by the admin API."""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .retention.service import RetentionService, build_retention_service


def require_admin_key(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_settings),
) -> str:
    """Authorise a request by the shared admin key.

    Raises:
        HTTPException 503: ADMIN_API_KEY is not configured (admin API disabled)
        HTTPException 403: Header missing or wrong
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled: ADMIN_API_KEY is not configured",
        )

    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )

    return "admin"


def get_retention_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RetentionService:
    return build_retention_service(db, settings)
