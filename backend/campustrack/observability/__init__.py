"""Observability: structured logging, job run correlation, Prometheus metrics"""

from .logging_config import configure_logging, JSONFormatter, RunIDFilter
from .run_context import get_run_id, job_run

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "RunIDFilter",
    "get_run_id",
    "job_run",
]
