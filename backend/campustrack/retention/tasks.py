"""Celery tasks for the retention lifecycle.

One task per scheduled stage plus a manual run-all task. The beat schedule
lives in campustrack.worker.

Tasks:
- retention.send_item_deletion_warnings: 01:00
- retention.mark_inactive_items: 02:00
- retention.delete_scheduled_items: 03:00
- retention.mark_inactive_users: 04:00
- retention.send_user_deletion_warnings: 05:00
- retention.delete_scheduled_users: 06:00
- retention.run_all: manual (admin trigger)

Every task opens its own session, never raises and returns a JSON-serialisable
summary. A failed run is logged and retried by the next scheduled run.
"""

import logging
import time
from typing import Any, Dict

from celery import shared_task

from ..database import SessionLocal
from ..observability import metrics
from ..observability.run_context import job_run
from . import service as retention
from .service import build_retention_service

logger = logging.getLogger(__name__)


def _run_retention_job(job_name: str) -> Dict[str, Any]:
    """Run one stage in a fresh session and summarise it for the task result."""
    with job_run() as run_id:
        db = SessionLocal()
        started = time.monotonic()
        service = None
        try:
            service = build_retention_service(db)
            statistics = service.run_job(job_name)

            return {
                "status": "completed",
                "run_id": run_id,
                **statistics.model_dump(mode="json"),
                "has_errors": statistics.has_errors,
                "is_anomaly": statistics.is_anomaly,
            }

        except Exception as e:
            if service is None:
                # run_job records its own failures
                metrics.record_job_run(job_name, "failed", time.monotonic() - started)
            logger.error(
                f"Retention job {job_name} failed",
                exc_info=True,
                extra={"job": job_name, "error": str(e)},
            )

            # Return error status but don't raise (next scheduled run retries)
            return {
                "status": "failed",
                "run_id": run_id,
                "job_name": job_name,
                "error": str(e),
            }

        finally:
            db.close()


@shared_task(name="retention.send_item_deletion_warnings", bind=True)
def send_item_deletion_warnings_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.SEND_ITEM_WARNINGS)


@shared_task(name="retention.mark_inactive_items", bind=True)
def mark_inactive_items_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.MARK_ITEMS)


@shared_task(name="retention.delete_scheduled_items", bind=True)
def delete_scheduled_items_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.DELETE_ITEMS)


@shared_task(name="retention.mark_inactive_users", bind=True)
def mark_inactive_users_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.MARK_USERS)


@shared_task(name="retention.send_user_deletion_warnings", bind=True)
def send_user_deletion_warnings_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.SEND_USER_WARNINGS)


@shared_task(name="retention.delete_scheduled_users", bind=True)
def delete_scheduled_users_task(self) -> Dict[str, Any]:
    return _run_retention_job(retention.DELETE_USERS)


@shared_task(name="retention.run_all", bind=True)
def run_full_cleanup_task(self) -> Dict[str, Any]:
    """Run all six stages in schedule order (manual trigger).

    Returns:
        Dict with:
        - status: completed | completed_with_errors | failed
        - stages: per-stage statistics
        - failed_stages: stages whose selection query failed
    """
    with job_run() as run_id:
        logger.info("Full retention cleanup started")

        db = SessionLocal()
        try:
            summary = build_retention_service(db).run_full_cleanup()

            result = {
                "status": "completed_with_errors" if summary.has_errors else "completed",
                "run_id": run_id,
                "stages": [stage.model_dump(mode="json") for stage in summary.stages],
                "failed_stages": summary.failed_stages,
            }

            logger.info(
                "Full retention cleanup finished",
                extra={"processed": sum(stage.processed for stage in summary.stages)},
            )
            return result

        except Exception as e:
            logger.error(
                "Full retention cleanup failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            return {
                "status": "failed",
                "run_id": run_id,
                "error": str(e),
            }

        finally:
            db.close()
