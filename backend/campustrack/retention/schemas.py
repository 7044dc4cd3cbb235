"""Pydantic schemas for retention settings, stage results, statistics and reports.

This module defines retention-related schemas:
- RetentionSettings: Policy the engine runs with (built once from Settings)
- *Result: Tagged per-entity results, one type per lifecycle stage
- RetentionJobStatistics: Aggregate outcome of one job run
- Scheduled*Report / DeletionSuccessReport: Admin read models
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..domain.retention.lifecycle import DeletionState

StrategyName = Literal["inactivity", "deactivation"]
ReportKind = Literal["all", "items", "users"]

# Runs touching more entities than this are flagged for investigation
ANOMALY_THRESHOLD = 10000


class RetentionSettings(BaseModel):
    """Retention policy.

    Defaults match the production policy: entities idle for 60 days are marked
    and purged 7 days later unless rescued.
    """

    user_deletion_strategy: StrategyName = Field(
        default="deactivation",
        description="Which timestamp qualifies a user as inactive"
    )

    inactivity_days: int = Field(
        default=60,
        ge=1,
        le=365,
        description="Days of inactivity/deactivation before a user is marked (1-365)"
    )

    grace_period_days: int = Field(
        default=7,
        ge=1,
        le=30,
        description="Days between marking and purging a user (1-30)"
    )

    item_inactivity_days: int = Field(
        default=60,
        ge=1,
        le=365,
        description="Days without activity before an item is marked (1-365)"
    )

    item_grace_period_days: int = Field(
        default=7,
        ge=1,
        le=30,
        description="Days between marking and purging an item (1-30)"
    )

    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Base URL for links in warning emails"
    )

    @classmethod
    def from_app_settings(cls, settings) -> "RetentionSettings":
        """Build from the environment-backed application Settings."""
        return cls(
            user_deletion_strategy=settings.USER_DELETION_STRATEGY,
            inactivity_days=settings.INACTIVITY_DAYS,
            grace_period_days=settings.GRACE_PERIOD_DAYS,
            item_inactivity_days=settings.ITEM_INACTIVITY_DAYS,
            item_grace_period_days=settings.ITEM_GRACE_PERIOD_DAYS,
            frontend_url=settings.FRONTEND_URL,
        )


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------

class ItemMarkResult(BaseModel):
    kind: Literal["marked"] = "marked"
    item_id: UUID
    title: str
    owner: str
    last_activity_date: datetime

    @property
    def ok(self) -> bool:
        return True


class ItemWarningResult(BaseModel):
    kind: Literal["warned", "failed"]
    item_id: UUID
    title: str
    owner: str
    days_remaining: Optional[int] = None
    email_sent: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.email_sent


class UserMarkResult(BaseModel):
    kind: Literal["marked"] = "marked"
    user_id: UUID
    name: str
    email: str
    strategy: StrategyName
    last_login_date: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return True


class UserWarningResult(BaseModel):
    kind: Literal["warned", "failed"]
    user_id: UUID
    email: str
    days_remaining: Optional[int] = None
    email_sent: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.email_sent


class RelatedDataDeletion(BaseModel):
    """Counts removed by the cascade deleter for one item."""
    conversations_deleted: int = 0
    messages_deleted: int = 0
    notifications_deleted: int = 0

    def __add__(self, other: "RelatedDataDeletion") -> "RelatedDataDeletion":
        return RelatedDataDeletion(
            conversations_deleted=self.conversations_deleted + other.conversations_deleted,
            messages_deleted=self.messages_deleted + other.messages_deleted,
            notifications_deleted=self.notifications_deleted + other.notifications_deleted,
        )


class ItemPurgeResult(BaseModel):
    kind: Literal["purged", "failed"]
    item_id: UUID
    title: str
    owner: str
    image_deleted: bool = False
    conversations_deleted: int = 0
    messages_deleted: int = 0
    notifications_deleted: int = 0
    success: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.success


class UserPurgeResult(BaseModel):
    kind: Literal["purged", "failed"]
    user_id: UUID
    email: str
    items_deleted: int = 0
    conversations_deleted: int = 0
    messages_deleted: int = 0
    notifications_deleted: int = 0
    images_deleted: int = 0
    success: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.success


# ---------------------------------------------------------------------------
# Job statistics
# ---------------------------------------------------------------------------

class RetentionJobStatistics(BaseModel):
    """Statistics from a retention job execution.

    Used for logging, metrics and the Celery task result.
    """

    job_name: str = Field(
        description="Stage that ran (e.g. 'delete_scheduled_items')"
    )

    job_started_at: datetime = Field(
        description="When the job started"
    )

    job_completed_at: datetime = Field(
        description="When the job completed"
    )

    duration_seconds: float = Field(
        ge=0.0,
        description="Job execution duration in seconds"
    )

    processed: int = Field(
        default=0,
        ge=0,
        description="Entities with a result entry"
    )

    succeeded: int = Field(
        default=0,
        ge=0,
        description="Entities processed successfully"
    )

    failed: int = Field(
        default=0,
        ge=0,
        description="Entities whose processing failed"
    )

    @classmethod
    def from_results(
        cls,
        job_name: str,
        started_at: datetime,
        completed_at: datetime,
        results: list,
    ) -> "RetentionJobStatistics":
        succeeded = sum(1 for result in results if result.ok)
        return cls(
            job_name=job_name,
            job_started_at=started_at,
            job_completed_at=completed_at,
            duration_seconds=max((completed_at - started_at).total_seconds(), 0.0),
            processed=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )

    @property
    def has_errors(self) -> bool:
        """Whether any entity failed during execution."""
        return self.failed > 0

    @property
    def is_anomaly(self) -> bool:
        """Whether the volume exceeds normal thresholds (alert condition)."""
        return self.processed > ANOMALY_THRESHOLD


class CleanupRunSummary(BaseModel):
    """Outcome of run_full_cleanup: one entry per stage, in schedule order."""

    stages: List[RetentionJobStatistics] = Field(default_factory=list)
    failed_stages: List[str] = Field(
        default_factory=list,
        description="Stages whose batch-level query failed"
    )

    @property
    def has_errors(self) -> bool:
        return bool(self.failed_stages) or any(stage.has_errors for stage in self.stages)


# ---------------------------------------------------------------------------
# Admin read models
# ---------------------------------------------------------------------------

class ScheduledItemEntry(BaseModel):
    item_id: UUID
    title: str
    owner: str
    image: Optional[str] = None
    last_activity_date: datetime
    deletion_scheduled_at: datetime
    deletion_due_at: datetime
    days_remaining: int
    state: DeletionState


class ScheduledItemsReport(BaseModel):
    generated_at: datetime
    count: int
    grace_period_days: int
    items: List[ScheduledItemEntry]


class ScheduledUserEntry(BaseModel):
    user_id: UUID
    name: str
    email: str
    role: str
    is_active: bool
    last_login_date: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    deletion_scheduled_at: datetime
    deletion_due_at: datetime
    days_remaining: int
    warning_email_sent: bool
    state: DeletionState


class ScheduledUsersReport(BaseModel):
    generated_at: datetime
    count: int
    grace_period_days: int
    deletion_strategy: StrategyName
    inactivity_days: int
    users: List[ScheduledUserEntry]


class DeletionSuccessReport(BaseModel):
    """Purges and rescues recorded in the audit log over a look-back window."""

    kind: ReportKind
    period_days: int
    since: datetime
    generated_at: datetime
    items_purged: int = 0
    users_purged: int = 0
    items_cancelled: int = 0
    users_cancelled: int = 0
    total_purged: int = 0
    images_deleted: int = 0
    purges: List[dict] = Field(
        default_factory=list,
        description="Audit entries for the purges, newest first"
    )
