"""AuditLog SQLAlchemy model

Append-only record of retention lifecycle transitions. entity_id has no
foreign key because purged entities must keep their audit trail.
"""

import uuid

from sqlalchemy import Column, DateTime, Index, Text, Uuid

from .base import Base, PortableJSONB, utcnow


class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_action_created_at", "action", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(Text, nullable=False)
    actor = Column(Text, nullable=False, default="system")
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Uuid, nullable=False, index=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "action": self.action,
            "actor": self.actor,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
