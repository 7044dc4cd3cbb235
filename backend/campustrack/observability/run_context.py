"""Job run correlation id.

Every scheduled or manually triggered retention job gets a run id so that all
log lines of one run can be correlated. Stored in a ContextVar so it is safe
with threads and async code alike.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def generate_run_id() -> str:
    return str(uuid.uuid4())


def get_run_id() -> str:
    """Get current run id from context.

    Returns:
        str: Current run id or "no-run-id" outside of a job run
    """
    return run_id_var.get() or "no-run-id"


@contextmanager
def job_run(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind a run id for the duration of a block.

    Example:
        with job_run() as run_id:
            service.delete_scheduled_items()
    """
    token = run_id_var.set(run_id or generate_run_id())
    try:
        yield run_id_var.get()
    finally:
        run_id_var.reset(token)
