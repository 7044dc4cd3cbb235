"""Per-entity failure isolation for retention stages."""

import logging
from typing import Callable, Iterable, List, Optional, TypeVar

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

E = TypeVar("E")  # Entity
S = TypeVar("S")  # Snapshot taken before processing
R = TypeVar("R")  # Result

_MISSING = object()


def process_isolated(
    db: Session,
    entities: Iterable[E],
    snapshot: Callable[[E], S],
    process: Callable[[E, S], Optional[R]],
    on_error: Callable[[S, Exception], R],
    job: str,
    fallback: Callable[[E], S],
) -> List[R]:
    """Map process over entities, converting each failure into a result.

    The snapshot of an entity is taken before processing so that the failed
    result can still be built after the session has been rolled back. If
    taking the snapshot fails, fallback builds it from the identity key.
    A process call returning None produces no result entry (entity skipped).
    One entity failing never aborts the loop.

    Args:
        db: Session to roll back when an entity fails
        entities: Entities selected by the stage query, in scan order
        snapshot: Captures identity fields used in results
        process: Handles one entity; commits its own work
        on_error: Builds the failed result variant
        job: Stage name for log context
        fallback: Builds a snapshot without loading attributes, used when
            snapshot itself fails (e.g. the row was deleted concurrently)

    Returns:
        One result per processed entity, in scan order
    """
    results: List[R] = []

    for entity in entities:
        captured = _MISSING
        try:
            captured = snapshot(entity)
            result = process(entity, captured)
        except Exception as e:
            db.rollback()
            logger.error(
                f"{job}: failed to process entity: {e}",
                exc_info=True,
                extra={"job": job, "error": str(e)},
            )
            if captured is _MISSING:
                captured = fallback(entity)
            result = on_error(captured, e)

        if result is not None:
            results.append(result)

    return results
