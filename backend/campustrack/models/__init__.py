"""SQLAlchemy Models for CampusTrack"""

from .base import Base, DeletionScheduleMixin, PortableJSONB, utcnow
from .user import User, UserRole
from .item import Item, ItemStatus, DeletionReason
from .conversation import Conversation, conversation_participant
from .message import Message
from .notification import Notification, NotificationType
from .audit_log import AuditLog

__all__ = [
    "Base",
    "DeletionScheduleMixin",
    "PortableJSONB",
    "utcnow",
    "User",
    "UserRole",
    "Item",
    "ItemStatus",
    "DeletionReason",
    "Conversation",
    "conversation_participant",
    "Message",
    "Notification",
    "NotificationType",
    "AuditLog",
]
