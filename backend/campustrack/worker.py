"""Celery application and the daily retention schedule.

Run the worker and the scheduler with:

    celery -A campustrack.worker worker --loglevel=info --concurrency=1
    celery -A campustrack.worker beat --loglevel=info

Stages run one hour apart. Per entity type, warnings go out before marking
and marking before purging, so an entity is never warned in the same cycle
it is newly marked.

The pool process that runs the tasks serves Prometheus metrics on
WORKER_METRICS_PORT, so the worker runs with a single pool process.
"""

import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging, worker_process_init
from prometheus_client import start_http_server

from .config import get_settings
from .observability.logging_config import configure_logging

logger = logging.getLogger(__name__)

settings = get_settings()

BEAT_SCHEDULE = {
    "retention-send-item-deletion-warnings": {
        "task": "retention.send_item_deletion_warnings",
        "schedule": crontab(hour=1, minute=0),
        "options": {"expires": 3600},
    },
    "retention-mark-inactive-items": {
        "task": "retention.mark_inactive_items",
        "schedule": crontab(hour=2, minute=0),
        "options": {"expires": 3600},
    },
    "retention-delete-scheduled-items": {
        "task": "retention.delete_scheduled_items",
        "schedule": crontab(hour=3, minute=0),
        "options": {"expires": 3600},
    },
    "retention-mark-inactive-users": {
        "task": "retention.mark_inactive_users",
        "schedule": crontab(hour=4, minute=0),
        "options": {"expires": 3600},
    },
    "retention-send-user-deletion-warnings": {
        "task": "retention.send_user_deletion_warnings",
        "schedule": crontab(hour=5, minute=0),
        "options": {"expires": 3600},
    },
    "retention-delete-scheduled-users": {
        "task": "retention.delete_scheduled_users",
        "schedule": crontab(hour=6, minute=0),
        "options": {"expires": 3600},
    },
}

celery_app = Celery(
    "campustrack",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["campustrack.retention.tasks"],
)

celery_app.conf.update(
    timezone=settings.RETENTION_SCHEDULE_TIMEZONE,
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule=BEAT_SCHEDULE,
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)


@worker_process_init.connect
def _start_metrics_exporter(**kwargs) -> None:
    port = settings.WORKER_METRICS_PORT
    if port is None:
        return
    start_http_server(port)
    logger.info(f"Worker metrics exporter listening on port {port}")
