"""FastAPI router for retention administration.

Provides admin APIs for:
- Listing items and users scheduled for deletion
- Cancelling a scheduled deletion
- Viewing the active retention configuration
- Scheduled-entity and deletion-success reports
- Manually triggering a full cleanup run

All endpoints require the X-Admin-Key header.
"""

import logging
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_retention_service, require_admin_key
from .schemas import (
    DeletionSuccessReport,
    ReportKind,
    RetentionSettings,
    ScheduledItemsReport,
    ScheduledUsersReport,
)
from .service import NotFoundError, RetentionService
from .tasks import run_full_cleanup_task

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/admin/retention",
    tags=["retention"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("/scheduled-items", response_model=Dict[str, Any])
def list_scheduled_items(
    service: RetentionService = Depends(get_retention_service),
) -> Dict[str, Any]:
    """List items scheduled for deletion, oldest schedule first."""
    items = service.get_scheduled_deletions()
    return {
        "count": len(items),
        "items": [
            {**item.to_dict(), "owner": item.owner_email}
            for item in items
        ],
    }


@router.post("/items/{item_id}/cancel-deletion", response_model=Dict[str, Any])
def cancel_item_deletion(
    item_id: UUID,
    service: RetentionService = Depends(get_retention_service),
) -> Dict[str, Any]:
    """Cancel an item's scheduled deletion and mark it active again.

    Raises:
        HTTPException 404: Item not found
    """
    try:
        item = service.cancel_scheduled_deletion(item_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return {"message": "Item deletion cancelled successfully", "item": item.to_dict()}


@router.get("/scheduled-users", response_model=Dict[str, Any])
def list_scheduled_users(
    service: RetentionService = Depends(get_retention_service),
) -> Dict[str, Any]:
    """List users scheduled for deletion, oldest schedule first."""
    users = service.get_scheduled_user_deletions()
    return {
        "count": len(users),
        "users": [user.to_dict() for user in users],
    }


@router.post("/users/{user_id}/cancel-deletion", response_model=Dict[str, Any])
def cancel_user_deletion(
    user_id: UUID,
    service: RetentionService = Depends(get_retention_service),
) -> Dict[str, Any]:
    """Cancel a user's scheduled deletion.

    Raises:
        HTTPException 404: User not found
    """
    try:
        user = service.cancel_user_deletion(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return {"message": "User deletion cancelled successfully", "user": user.to_dict()}


@router.get("/config", response_model=RetentionSettings)
def get_cleanup_config(
    service: RetentionService = Depends(get_retention_service),
) -> RetentionSettings:
    """Active retention configuration (read once at process start)."""
    return service.get_cleanup_config()


@router.get("/reports/scheduled-items", response_model=ScheduledItemsReport)
def scheduled_items_report(
    service: RetentionService = Depends(get_retention_service),
) -> ScheduledItemsReport:
    return service.get_scheduled_items_report()


@router.get("/reports/scheduled-users", response_model=ScheduledUsersReport)
def scheduled_users_report(
    service: RetentionService = Depends(get_retention_service),
) -> ScheduledUsersReport:
    return service.get_scheduled_users_report()


@router.get("/reports/deletion-success", response_model=DeletionSuccessReport)
def deletion_success_report(
    days: int = Query(default=30, ge=1, le=365, description="Days to look back"),
    kind: ReportKind = Query(default="all", alias="type"),
    service: RetentionService = Depends(get_retention_service),
) -> DeletionSuccessReport:
    """Purges and cancellations recorded over the last `days` days."""
    return service.get_deletion_success_report(days=days, kind=kind)


@router.post("/trigger-cleanup", response_model=Dict[str, Any], status_code=status.HTTP_202_ACCEPTED)
def trigger_cleanup() -> Dict[str, Any]:
    """Enqueue a full cleanup run (all six stages in schedule order).

    The run executes asynchronously on the Celery worker. This endpoint
    returns immediately with the task ID.

    Returns:
        Dict with:
        - status: "enqueued"
        - task_id: Celery task ID for status checking
    """
    task = run_full_cleanup_task.delay()

    logger.info(
        "Full retention cleanup triggered",
        extra={"job": "run_all"},
    )

    return {
        "status": "enqueued",
        "task_id": task.id,
    }
