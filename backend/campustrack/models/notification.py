"""Notification SQLAlchemy model

user_id is the recipient; sender_id is the user whose action produced the
notification (claim, message, ...). Both, and item_id, are cascade targets
when the referenced entity is purged.
"""

import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid

from .base import Base, utcnow


class NotificationType(str, enum.Enum):
    ITEM_CLAIMED = "item_claimed"
    ITEM_RETURNED = "item_returned"
    NEW_MESSAGE = "new_message"
    OTHER = "other"


class Notification(Base):
    __tablename__ = "notification"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=True, index=True)
    item_id = Column(Uuid, ForeignKey("item.id", ondelete="CASCADE"), nullable=True, index=True)
    message = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default=NotificationType.OTHER.value)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
