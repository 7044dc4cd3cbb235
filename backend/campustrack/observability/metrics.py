"""Prometheus metrics for the retention engine.

Exposed by the API process at /metrics. The Celery worker runs tasks in its
pool process and serves that registry on WORKER_METRICS_PORT (see worker.py).
"""

from prometheus_client import Counter, Histogram

retention_entities_total = Counter(
    "campustrack_retention_entities_total",
    "Entities processed by retention jobs",
    ["job", "outcome"]  # outcome: success|failed
)

retention_job_runs_total = Counter(
    "campustrack_retention_job_runs_total",
    "Retention job executions",
    ["job", "status"]  # status: completed|failed
)

retention_job_duration_seconds = Histogram(
    "campustrack_retention_job_duration_seconds",
    "Retention job wall-clock duration in seconds",
    ["job"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0]
)

warning_emails_total = Counter(
    "campustrack_retention_warning_emails_total",
    "Deletion warning emails attempted",
    ["entity_type", "status"]  # entity_type: item|user, status: sent|failed
)

images_deleted_total = Counter(
    "campustrack_retention_images_deleted_total",
    "Hosted image deletions attempted during purges",
    ["status"]  # status: success|failed
)


def record_entity_outcome(job: str, success: bool) -> None:
    retention_entities_total.labels(job=job, outcome="success" if success else "failed").inc()


def record_job_run(job: str, status: str, duration_seconds: float) -> None:
    """Record a finished job run (status: completed|failed)."""
    retention_job_runs_total.labels(job=job, status=status).inc()
    retention_job_duration_seconds.labels(job=job).observe(duration_seconds)


def record_warning_email(entity_type: str, sent: bool) -> None:
    warning_emails_total.labels(entity_type=entity_type, status="sent" if sent else "failed").inc()


def record_image_deletions(results) -> None:
    """Count AssetDeletionResult outcomes."""
    for result in results:
        images_deleted_total.labels(status="success" if result.success else "failed").inc()
