"""User SQLAlchemy model"""

import enum
import re
import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, CheckConstraint, Uuid
from sqlalchemy.orm import validates

from .base import Base, DeletionScheduleMixin, deletion_schedule_constraint, utcnow


class UserRole(str, enum.Enum):
    """Account roles. ADMIN accounts are exempt from every deletion path."""
    USER = "user"
    KEEPER = "keeper"
    ADMIN = "admin"


class User(DeletionScheduleMixin, Base):
    """Campus account that posts items and takes part in conversations.

    Retention fields:
    - last_login_date drives the 'inactivity' deletion strategy
    - deactivated_at drives the 'deactivation' deletion strategy
    - deletion_warning_email_sent guards against duplicate warning emails
    """
    __tablename__ = "user"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    role = Column(Text, nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime, nullable=True, index=True)
    last_login_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    deletion_warning_email_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "role IN ('user', 'keeper', 'admin')",
            name='ck_user_role'
        ),
        deletion_schedule_constraint("user"),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    def deactivate(self, now) -> None:
        """Deactivate the account, recording when it happened (first time only)."""
        self.is_active = False
        if self.deactivated_at is None:
            self.deactivated_at = now

    def reactivate(self) -> None:
        """Reactivate the account; the deactivation timestamp no longer applies."""
        self.is_active = True
        self.deactivated_at = None

    def to_dict(self):
        """Convert user to dictionary representation"""
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "deactivated_at": self.deactivated_at.isoformat() if self.deactivated_at else None,
            "last_login_date": self.last_login_date.isoformat() if self.last_login_date else None,
            "scheduled_for_deletion": self.scheduled_for_deletion,
            "deletion_scheduled_at": self.deletion_scheduled_at.isoformat() if self.deletion_scheduled_at else None,
            "deletion_warning_email_sent": self.deletion_warning_email_sent,
        }
