"""Conversation and participant SQLAlchemy models

A conversation is always about one item and has at least two participants.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Table, Uuid
from sqlalchemy.orm import relationship

from .base import Base, utcnow


conversation_participant = Table(
    "conversation_participant",
    Base.metadata,
    Column("conversation_id", Uuid, ForeignKey("conversation.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Conversation(Base):
    __tablename__ = "conversation"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, ForeignKey("item.id", ondelete="CASCADE"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    participants = relationship("User", secondary=conversation_participant)
