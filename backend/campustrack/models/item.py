"""Item SQLAlchemy model

An Item is a lost or found listing posted by a user. Only the fields the
retention engine reads or writes are modelled here in detail.
"""

import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, DeletionScheduleMixin, deletion_schedule_constraint, utcnow


class ItemStatus(str, enum.Enum):
    LOST = "Lost"
    FOUND = "Found"
    CLAIMED = "Claimed"
    RETURNED = "Returned"


class DeletionReason(str, enum.Enum):
    """Why an item was scheduled for deletion"""
    INACTIVITY = "inactivity"


class Item(DeletionScheduleMixin, Base):
    """Lost/found listing.

    last_activity_date is refreshed by any user-facing interaction and drives
    inactivity detection. posted_by_id becomes NULL if the owner row is
    removed outside the retention engine.
    """
    __tablename__ = "item"
    __table_args__ = (deletion_schedule_constraint("item"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=ItemStatus.LOST.value)
    location = Column(Text, nullable=True)
    image = Column(Text, nullable=True)  # Hosted image URL
    posted_by_id = Column(
        Uuid,
        ForeignKey("user.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    deletion_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", foreign_keys=[posted_by_id])

    @property
    def owner_email(self) -> str:
        return self.owner.email if self.owner is not None else "Unknown"

    def to_dict(self):
        """Convert item to dictionary representation"""
        return {
            "id": str(self.id),
            "title": self.title,
            "status": self.status,
            "image": self.image,
            "posted_by_id": str(self.posted_by_id) if self.posted_by_id else None,
            "is_active": self.is_active,
            "last_activity_date": self.last_activity_date.isoformat() if self.last_activity_date else None,
            "scheduled_for_deletion": self.scheduled_for_deletion,
            "deletion_scheduled_at": self.deletion_scheduled_at.isoformat() if self.deletion_scheduled_at else None,
            "deletion_reason": self.deletion_reason,
        }
