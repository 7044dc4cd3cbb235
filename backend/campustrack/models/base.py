"""Base SQLAlchemy declarative base and shared column sets for all models"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (all timestamps are stored as UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Uses JSONB on PostgreSQL for efficient indexing and querying,
    falls back to JSON on SQLite for testing compatibility.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


class DeletionScheduleMixin:
    """Columns shared by entities that go through the mark -> warn -> purge lifecycle.

    Invariant: scheduled_for_deletion is true exactly when deletion_scheduled_at
    is set. The CHECK constraint is declared on each table via
    deletion_schedule_constraint(); the helpers below are the only writers.
    """

    scheduled_for_deletion = Column(Boolean, nullable=False, default=False, index=True)
    deletion_scheduled_at = Column(DateTime, nullable=True)

    def schedule_deletion(self, now: datetime) -> None:
        self.scheduled_for_deletion = True
        self.deletion_scheduled_at = now

    def clear_deletion_schedule(self) -> None:
        self.scheduled_for_deletion = False
        self.deletion_scheduled_at = None


def deletion_schedule_constraint(table_name: str) -> CheckConstraint:
    return CheckConstraint(
        "(scheduled_for_deletion = false AND deletion_scheduled_at IS NULL) OR "
        "(scheduled_for_deletion = true AND deletion_scheduled_at IS NOT NULL)",
        name=f"ck_{table_name}_deletion_schedule",
    )
