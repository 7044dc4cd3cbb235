"""Audit logging for retention lifecycle transitions.

Every state change performed by the retention engine is recorded through this
module so that administrators can reconstruct what was marked, warned, purged
or rescued, and when. Rows are added to the caller's session and flushed, so
they commit (or roll back) together with the change they describe.

Audit Events:
- ITEM_MARKED_FOR_DELETION, USER_MARKED_FOR_DELETION
- ITEM_DELETION_WARNING_SENT, USER_DELETION_WARNING_SENT
- ITEM_PURGED, USER_PURGED
- ITEM_DELETION_CANCELLED, USER_DELETION_CANCELLED
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog

SYSTEM_ACTOR = "system"

ENTITY_ITEM = "item"
ENTITY_USER = "user"

ITEM_MARKED_FOR_DELETION = "ITEM_MARKED_FOR_DELETION"
ITEM_DELETION_WARNING_SENT = "ITEM_DELETION_WARNING_SENT"
ITEM_PURGED = "ITEM_PURGED"
ITEM_DELETION_CANCELLED = "ITEM_DELETION_CANCELLED"

USER_MARKED_FOR_DELETION = "USER_MARKED_FOR_DELETION"
USER_DELETION_WARNING_SENT = "USER_DELETION_WARNING_SENT"
USER_PURGED = "USER_PURGED"
USER_DELETION_CANCELLED = "USER_DELETION_CANCELLED"


def log_audit_event(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: UUID,
    actor: str = SYSTEM_ACTOR,
    metadata: Optional[Dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> AuditLog:
    """Create an audit log entry.

    This function does not validate action names or entity types; callers
    use the constants defined in this module.

    Args:
        db: Database session
        action: Event action (e.g., "ITEM_PURGED")
        entity_type: "item" or "user"
        entity_id: ID of affected entity
        actor: Who performed the action ("system" for scheduled jobs)
        metadata: Additional context as JSON (e.g., {"title": ..., "images_deleted": 2})
        created_at: Event time (default: current UTC time); retention jobs
            pass the service clock

    Returns:
        AuditLog: The created audit log entry

    Example:
        log_audit_event(
            db=db,
            action=ITEM_MARKED_FOR_DELETION,
            entity_type=ENTITY_ITEM,
            entity_id=item.id,
            metadata={"title": item.title, "reason": "inactivity"},
        )
    """
    audit_entry = AuditLog(
        action=action,
        actor=actor,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
    )
    if created_at is not None:
        audit_entry.created_at = created_at

    db.add(audit_entry)
    db.flush()  # Get ID without committing transaction

    return audit_entry
