"""Retention service for the item and user deletion lifecycles.

This service implements the core retention logic:
- Mark inactive items / users for deletion
- Send one deletion warning during the grace period
- Purge entities whose grace period has elapsed, cascading to conversations,
  messages, notifications and hosted images
- Cancel a scheduled deletion (admin action, item activity, user login)
- Admin reads and reports
- Audit logging for every transition

Error policy: a failure of a stage's selection query propagates to the caller
after rolling back. A failure while processing one entity is recorded in that
entity's result and the stage continues with the next entity.

All stages are idempotent and can be safely retried.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import inspect, or_
from sqlalchemy.orm import Session, joinedload

from ..audit import service as audit
from ..audit.service import log_audit_event
from ..domain.retention.lifecycle import (
    DeletionState,
    can_transition,
    days_remaining,
    deletion_due_at,
    item_state,
    user_state,
)
from ..domain.retention.ports import EmailSenderPort, ImageStorePort
from ..domain.retention.strategies import get_strategy
from ..models.audit_log import AuditLog
from ..models.base import utcnow
from ..models.conversation import Conversation, conversation_participant
from ..models.item import DeletionReason, Item
from ..models.message import Message
from ..models.notification import Notification
from ..models.user import User, UserRole
from ..notifications.email_templates import (
    ACCOUNT_WARNING_SUBJECT,
    ITEM_WARNING_SUBJECT,
    account_deletion_warning_template,
    item_deletion_warning_template,
)
from ..observability import metrics
from .batch import process_isolated
from .schemas import (
    CleanupRunSummary,
    DeletionSuccessReport,
    ItemMarkResult,
    ItemPurgeResult,
    ItemWarningResult,
    RelatedDataDeletion,
    ReportKind,
    RetentionJobStatistics,
    RetentionSettings,
    ScheduledItemEntry,
    ScheduledItemsReport,
    ScheduledUserEntry,
    ScheduledUsersReport,
    UserMarkResult,
    UserPurgeResult,
    UserWarningResult,
)

logger = logging.getLogger(__name__)

# Job names, in daily schedule order (warn before mark before purge)
SEND_ITEM_WARNINGS = "send_item_deletion_warnings"
MARK_ITEMS = "mark_inactive_items"
DELETE_ITEMS = "delete_scheduled_items"
MARK_USERS = "mark_inactive_users"
SEND_USER_WARNINGS = "send_user_deletion_warnings"
DELETE_USERS = "delete_scheduled_users"

JOB_ORDER = (
    SEND_ITEM_WARNINGS,
    MARK_ITEMS,
    DELETE_ITEMS,
    MARK_USERS,
    SEND_USER_WARNINGS,
    DELETE_USERS,
)


class NotFoundError(LookupError):
    """Raised when a cancel/touch operation targets a missing entity."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class RetentionService:
    """Service executing the retention lifecycle stages.

    Collaborators are injected so jobs can run against fakes in tests:
    - db: SQLAlchemy session, owned by the caller
    - settings: RetentionSettings, fixed for the lifetime of the service
    - mailer: EmailSenderPort
    - image_store: ImageStorePort
    - clock: returns the current naive UTC datetime
    """

    def __init__(
        self,
        db: Session,
        settings: RetentionSettings,
        mailer: EmailSenderPort,
        image_store: ImageStorePort,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings
        self.mailer = mailer
        self.image_store = image_store
        self.clock = clock
        self.strategy = get_strategy(settings.user_deletion_strategy, settings.inactivity_days)

    # ------------------------------------------------------------------
    # Item lifecycle
    # ------------------------------------------------------------------

    def mark_inactive_items_for_deletion(self) -> List[ItemMarkResult]:
        """Mark active items with no activity for item_inactivity_days.

        All marks of one run commit together; a database failure rolls the
        run back and propagates.
        """
        now = self.clock()
        threshold = now - timedelta(days=self.settings.item_inactivity_days)

        try:
            items = (
                self.db.query(Item)
                .options(joinedload(Item.owner))
                .filter(
                    Item.last_activity_date < threshold,
                    Item.scheduled_for_deletion.is_(False),
                    Item.is_active.is_(True),
                )
                .order_by(Item.last_activity_date)
                .all()
            )

            results = []
            for item in items:
                item.schedule_deletion(now)
                item.deletion_reason = DeletionReason.INACTIVITY.value

                log_audit_event(
                    db=self.db,
                    created_at=now,
                    action=audit.ITEM_MARKED_FOR_DELETION,
                    entity_type=audit.ENTITY_ITEM,
                    entity_id=item.id,
                    metadata={
                        "title": item.title,
                        "reason": item.deletion_reason,
                        "last_activity_date": item.last_activity_date.isoformat(),
                    },
                )

                results.append(ItemMarkResult(
                    item_id=item.id,
                    title=item.title,
                    owner=item.owner_email,
                    last_activity_date=item.last_activity_date,
                ))

                logger.info(
                    f"Marked item for deletion: {item.id} ({item.title})",
                    extra={"job": MARK_ITEMS, "item_id": str(item.id)},
                )

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return results

    def send_item_deletion_warnings(self) -> List[ItemWarningResult]:
        """Warn owners of items entering the last day of their grace period.

        Selects items scheduled in the 24 hours up to and including
        (grace - 1) days ago, so runs 24h apart never select an item twice.
        Items without an owner email are skipped and produce no result.
        """
        now = self.clock()
        grace = self.settings.item_grace_period_days
        window_end = now - timedelta(days=grace - 1)
        window_start = window_end - timedelta(hours=24)

        items = self._query_or_rollback(
            lambda: self.db.query(Item)
            .options(joinedload(Item.owner))
            .filter(
                Item.scheduled_for_deletion.is_(True),
                Item.deletion_scheduled_at > window_start,
                Item.deletion_scheduled_at <= window_end,
            )
            .order_by(Item.deletion_scheduled_at)
            .all()
        )

        def process(item: Item, snap: Dict) -> Optional[ItemWarningResult]:
            owner = item.owner
            if owner is None or not owner.email:
                logger.debug(f"Skipping warning for ownerless item {item.id}")
                return None

            remaining = max(1, days_remaining(item.deletion_scheduled_at, now, grace))
            html = item_deletion_warning_template(
                owner.name,
                item.title,
                remaining,
                self.settings.frontend_url,
                item.id,
            )
            self.mailer.send_email(owner.email, ITEM_WARNING_SUBJECT, html)
            metrics.record_warning_email(audit.ENTITY_ITEM, sent=True)

            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.ITEM_DELETION_WARNING_SENT,
                entity_type=audit.ENTITY_ITEM,
                entity_id=item.id,
                metadata={"owner": owner.email, "days_remaining": remaining},
            )
            self.db.commit()

            logger.info(
                f"Deletion warning sent for item: {snap['item_id']}",
                extra={"job": SEND_ITEM_WARNINGS, "item_id": str(snap["item_id"])},
            )

            return ItemWarningResult(
                kind="warned",
                item_id=snap["item_id"],
                title=snap["title"],
                owner=snap["owner"],
                days_remaining=remaining,
                email_sent=True,
            )

        def on_error(snap: Dict, error: Exception) -> ItemWarningResult:
            metrics.record_warning_email(audit.ENTITY_ITEM, sent=False)
            return ItemWarningResult(
                kind="failed",
                item_id=snap["item_id"],
                title=snap["title"],
                owner=snap["owner"],
                email_sent=False,
                error=str(error),
            )

        return process_isolated(
            self.db, items, self._item_snapshot, process, on_error, SEND_ITEM_WARNINGS,
            fallback=self._item_identity,
        )

    def delete_scheduled_items(self) -> List[ItemPurgeResult]:
        """Purge items whose grace period has elapsed (strictly older)."""
        now = self.clock()
        threshold = now - timedelta(days=self.settings.item_grace_period_days)

        items = self._query_or_rollback(
            lambda: self.db.query(Item)
            .options(joinedload(Item.owner))
            .filter(
                Item.scheduled_for_deletion.is_(True),
                Item.deletion_scheduled_at < threshold,
            )
            .order_by(Item.deletion_scheduled_at)
            .all()
        )

        def process(item: Item, snap: Dict) -> ItemPurgeResult:
            image_deleted = False
            asset_id = self.image_store.extract_asset_id(item.image)
            if asset_id:
                asset_results = self.image_store.delete_assets([asset_id])
                metrics.record_image_deletions(asset_results)
                image_deleted = any(r.success for r in asset_results)

            related = self.delete_item_related_data(item.id)

            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.ITEM_PURGED,
                entity_type=audit.ENTITY_ITEM,
                entity_id=item.id,
                metadata={
                    "title": snap["title"],
                    "owner": snap["owner"],
                    "image_deleted": image_deleted,
                    **related.model_dump(),
                },
            )
            self.db.delete(item)
            self.db.commit()

            logger.info(
                f"Purged item: {snap['item_id']} ({snap['title']})",
                extra={"job": DELETE_ITEMS, "item_id": str(snap["item_id"])},
            )

            return ItemPurgeResult(
                kind="purged",
                item_id=snap["item_id"],
                title=snap["title"],
                owner=snap["owner"],
                image_deleted=image_deleted,
                success=True,
                **related.model_dump(),
            )

        def on_error(snap: Dict, error: Exception) -> ItemPurgeResult:
            return ItemPurgeResult(
                kind="failed",
                item_id=snap["item_id"],
                title=snap["title"],
                owner=snap["owner"],
                success=False,
                error=str(error),
            )

        return process_isolated(
            self.db, items, self._item_snapshot, process, on_error, DELETE_ITEMS,
            fallback=self._item_identity,
        )

    def delete_item_related_data(self, item_id: UUID) -> RelatedDataDeletion:
        """Delete conversations about an item, their messages, and its notifications.

        Runs inside the caller's transaction and does not commit.
        """
        conversation_ids = [
            row.id
            for row in self.db.query(Conversation.id).filter(Conversation.item_id == item_id)
        ]
        conversations_deleted, messages_deleted = self._delete_conversations(conversation_ids)

        notifications_deleted = (
            self.db.query(Notification)
            .filter(Notification.item_id == item_id)
            .delete(synchronize_session=False)
        )

        return RelatedDataDeletion(
            conversations_deleted=conversations_deleted,
            messages_deleted=messages_deleted,
            notifications_deleted=notifications_deleted,
        )

    def cancel_scheduled_deletion(self, item_id: UUID, actor: str = "admin") -> Item:
        """Return an item to ACTIVE and refresh its activity timestamp.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if item is None:
            raise NotFoundError("item", item_id)

        now = self.clock()
        previous = item_state(item, now, self.settings.item_grace_period_days)

        item.clear_deletion_schedule()
        item.deletion_reason = None
        item.last_activity_date = now

        if previous != DeletionState.ACTIVE and can_transition(previous, DeletionState.ACTIVE):
            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.ITEM_DELETION_CANCELLED,
                entity_type=audit.ENTITY_ITEM,
                entity_id=item.id,
                actor=actor,
                metadata={"title": item.title, "previous_state": previous.value},
            )
            logger.info(
                f"Cancelled scheduled deletion for item {item.id}",
                extra={"item_id": str(item.id)},
            )

        self.db.commit()
        return item

    def record_item_activity(self, item_id: UUID) -> Item:
        """Touch an item on user interaction, rescuing it if scheduled."""
        return self.cancel_scheduled_deletion(item_id, actor="activity")

    # ------------------------------------------------------------------
    # User lifecycle
    # ------------------------------------------------------------------

    def mark_inactive_users_for_deletion(self) -> List[UserMarkResult]:
        """Mark users selected by the configured strategy."""
        now = self.clock()

        try:
            users = (
                self.db.query(User)
                .filter(self.strategy.select_candidates(now))
                .order_by(User.created_at)
                .all()
            )

            results = []
            for user in users:
                user.schedule_deletion(now)
                user.deletion_warning_email_sent = False

                log_audit_event(
                    db=self.db,
                    created_at=now,
                    action=audit.USER_MARKED_FOR_DELETION,
                    entity_type=audit.ENTITY_USER,
                    entity_id=user.id,
                    metadata={"email": user.email, "strategy": self.strategy.name},
                )

                results.append(UserMarkResult(
                    user_id=user.id,
                    name=user.name,
                    email=user.email,
                    strategy=self.strategy.name,
                    last_login_date=user.last_login_date,
                    deactivated_at=user.deactivated_at,
                ))

                logger.info(
                    f"Marked user for deletion: {user.email} ({self.strategy.name})",
                    extra={"job": MARK_USERS, "user_id": str(user.id)},
                )

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return results

    def send_user_deletion_warnings(self) -> List[UserWarningResult]:
        """Send one warning per scheduled user while days remain in the grace period.

        deletion_warning_email_sent is set only after a successful send, so a
        failed send is retried on the next run.
        """
        now = self.clock()
        grace = self.settings.grace_period_days

        users = self._query_or_rollback(
            lambda: self.db.query(User)
            .filter(
                User.scheduled_for_deletion.is_(True),
                User.deletion_warning_email_sent.is_(False),
            )
            .order_by(User.deletion_scheduled_at)
            .all()
        )

        def process(user: User, snap: Dict) -> Optional[UserWarningResult]:
            remaining = days_remaining(user.deletion_scheduled_at, now, grace)
            if not 0 < remaining <= grace:
                return None

            html = account_deletion_warning_template(
                user.name,
                remaining,
                self.settings.frontend_url,
            )
            self.mailer.send_email(user.email, ACCOUNT_WARNING_SUBJECT, html)
            metrics.record_warning_email(audit.ENTITY_USER, sent=True)

            user.deletion_warning_email_sent = True
            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.USER_DELETION_WARNING_SENT,
                entity_type=audit.ENTITY_USER,
                entity_id=user.id,
                metadata={"email": user.email, "days_remaining": remaining},
            )
            self.db.commit()

            logger.info(
                f"Deletion warning sent to user: {snap['email']}",
                extra={"job": SEND_USER_WARNINGS, "user_id": str(snap["user_id"])},
            )

            return UserWarningResult(
                kind="warned",
                user_id=snap["user_id"],
                email=snap["email"],
                days_remaining=remaining,
                email_sent=True,
            )

        def on_error(snap: Dict, error: Exception) -> UserWarningResult:
            metrics.record_warning_email(audit.ENTITY_USER, sent=False)
            return UserWarningResult(
                kind="failed",
                user_id=snap["user_id"],
                email=snap["email"],
                email_sent=False,
                error=str(error),
            )

        return process_isolated(
            self.db, users, self._user_snapshot, process, on_error, SEND_USER_WARNINGS,
            fallback=self._user_identity,
        )

    def delete_scheduled_users(self) -> List[UserPurgeResult]:
        """Purge users past their grace period with everything they own."""
        now = self.clock()
        threshold = now - timedelta(days=self.settings.grace_period_days)

        users = self._query_or_rollback(
            lambda: self.db.query(User)
            .filter(
                User.scheduled_for_deletion.is_(True),
                User.deletion_scheduled_at < threshold,
                User.role != UserRole.ADMIN.value,
            )
            .order_by(User.deletion_scheduled_at)
            .all()
        )

        def process(user: User, snap: Dict) -> UserPurgeResult:
            user_id = user.id
            items = self.db.query(Item).filter(Item.posted_by_id == user_id).all()

            images_deleted = 0
            asset_ids = [
                asset_id
                for asset_id in (self.image_store.extract_asset_id(item.image) for item in items)
                if asset_id
            ]
            if asset_ids:
                asset_results = self.image_store.delete_assets(asset_ids)
                metrics.record_image_deletions(asset_results)
                images_deleted = sum(1 for r in asset_results if r.success)

            related = RelatedDataDeletion()
            for item in items:
                related = related + self.delete_item_related_data(item.id)

            participant_conversation_ids = [
                row.conversation_id
                for row in self.db.query(conversation_participant.c.conversation_id)
                .filter(conversation_participant.c.user_id == user_id)
                .distinct()
            ]
            conversations_deleted, messages_deleted = self._delete_conversations(
                participant_conversation_ids
            )

            notifications_deleted = (
                self.db.query(Notification)
                .filter(or_(Notification.user_id == user_id, Notification.sender_id == user_id))
                .delete(synchronize_session=False)
            )

            items_deleted = (
                self.db.query(Item)
                .filter(Item.posted_by_id == user_id)
                .delete(synchronize_session="fetch")
            )

            counts = {
                "items_deleted": items_deleted,
                "conversations_deleted": related.conversations_deleted + conversations_deleted,
                "messages_deleted": related.messages_deleted + messages_deleted,
                "notifications_deleted": related.notifications_deleted + notifications_deleted,
                "images_deleted": images_deleted,
            }

            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.USER_PURGED,
                entity_type=audit.ENTITY_USER,
                entity_id=user_id,
                metadata={"email": snap["email"], **counts},
            )
            self.db.delete(user)
            self.db.commit()

            logger.info(
                f"Purged user: {snap['email']} ({items_deleted} items)",
                extra={"job": DELETE_USERS, "user_id": str(snap["user_id"])},
            )

            return UserPurgeResult(
                kind="purged",
                user_id=snap["user_id"],
                email=snap["email"],
                success=True,
                **counts,
            )

        def on_error(snap: Dict, error: Exception) -> UserPurgeResult:
            return UserPurgeResult(
                kind="failed",
                user_id=snap["user_id"],
                email=snap["email"],
                success=False,
                error=str(error),
            )

        return process_isolated(
            self.db, users, self._user_snapshot, process, on_error, DELETE_USERS,
            fallback=self._user_identity,
        )

    def cancel_user_deletion(
        self,
        user_id: UUID,
        actor: str = "admin",
        reactivate: bool = False,
    ) -> User:
        """Return a user to ACTIVE and refresh the timestamps the strategies read.

        last_login_date is set to now. A deactivated account either has its
        deactivated_at restarted at now or, with reactivate=True, is
        reactivated. Either way neither strategy selects the user again
        until the full inactivity window has elapsed.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("user", user_id)

        now = self.clock()
        previous = user_state(user)

        user.clear_deletion_schedule()
        user.deletion_warning_email_sent = False
        user.last_login_date = now
        if reactivate:
            user.reactivate()
        elif not user.is_active:
            user.deactivated_at = now

        if previous != DeletionState.ACTIVE and can_transition(previous, DeletionState.ACTIVE):
            log_audit_event(
                db=self.db,
                created_at=now,
                action=audit.USER_DELETION_CANCELLED,
                entity_type=audit.ENTITY_USER,
                entity_id=user.id,
                actor=actor,
                metadata={"email": user.email, "previous_state": previous.value},
            )
            logger.info(
                f"Cancelled scheduled deletion for user {user.email}",
                extra={"user_id": str(user.id)},
            )

        self.db.commit()
        return user

    def record_user_login(self, user_id: UUID) -> User:
        """Refresh last login and reactivate the account.

        Logging in rescues an account scheduled for deletion.
        """
        return self.cancel_user_deletion(user_id, actor="login", reactivate=True)

    # ------------------------------------------------------------------
    # Admin reads and reports
    # ------------------------------------------------------------------

    def get_cleanup_config(self) -> RetentionSettings:
        return self.settings

    def get_scheduled_deletions(self) -> List[Item]:
        """Items scheduled for deletion, oldest schedule first."""
        return (
            self.db.query(Item)
            .options(joinedload(Item.owner))
            .filter(Item.scheduled_for_deletion.is_(True))
            .order_by(Item.deletion_scheduled_at)
            .all()
        )

    def get_scheduled_user_deletions(self) -> List[User]:
        """Users scheduled for deletion, oldest schedule first."""
        return (
            self.db.query(User)
            .filter(User.scheduled_for_deletion.is_(True))
            .order_by(User.deletion_scheduled_at)
            .all()
        )

    def get_scheduled_items_report(self) -> ScheduledItemsReport:
        now = self.clock()
        grace = self.settings.item_grace_period_days

        entries = [
            ScheduledItemEntry(
                item_id=item.id,
                title=item.title,
                owner=item.owner_email,
                image=item.image,
                last_activity_date=item.last_activity_date,
                deletion_scheduled_at=item.deletion_scheduled_at,
                deletion_due_at=deletion_due_at(item.deletion_scheduled_at, grace),
                days_remaining=max(0, days_remaining(item.deletion_scheduled_at, now, grace)),
                state=item_state(item, now, grace),
            )
            for item in self.get_scheduled_deletions()
        ]

        return ScheduledItemsReport(
            generated_at=now,
            count=len(entries),
            grace_period_days=grace,
            items=entries,
        )

    def get_scheduled_users_report(self) -> ScheduledUsersReport:
        now = self.clock()
        grace = self.settings.grace_period_days

        entries = [
            ScheduledUserEntry(
                user_id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                is_active=user.is_active,
                last_login_date=user.last_login_date,
                deactivated_at=user.deactivated_at,
                deletion_scheduled_at=user.deletion_scheduled_at,
                deletion_due_at=deletion_due_at(user.deletion_scheduled_at, grace),
                days_remaining=max(0, days_remaining(user.deletion_scheduled_at, now, grace)),
                warning_email_sent=user.deletion_warning_email_sent,
                state=user_state(user),
            )
            for user in self.get_scheduled_user_deletions()
        ]

        return ScheduledUsersReport(
            generated_at=now,
            count=len(entries),
            grace_period_days=grace,
            deletion_strategy=self.settings.user_deletion_strategy,
            inactivity_days=self.settings.inactivity_days,
            users=entries,
        )

    def get_deletion_success_report(self, days: int = 30, kind: ReportKind = "all") -> DeletionSuccessReport:
        """Summarise purges and cancellations recorded in the audit log.

        Args:
            days: Look-back window in days (>= 1)
            kind: "all", "items" or "users"

        Raises:
            ValueError: If days < 1 or kind is unknown
        """
        if days < 1:
            raise ValueError("days must be at least 1")
        if kind not in ("all", "items", "users"):
            raise ValueError(f"Unknown report type '{kind}'")

        now = self.clock()
        since = now - timedelta(days=days)

        entity_types = {
            "all": [audit.ENTITY_ITEM, audit.ENTITY_USER],
            "items": [audit.ENTITY_ITEM],
            "users": [audit.ENTITY_USER],
        }[kind]
        actions = [
            audit.ITEM_PURGED,
            audit.USER_PURGED,
            audit.ITEM_DELETION_CANCELLED,
            audit.USER_DELETION_CANCELLED,
        ]

        entries = (
            self.db.query(AuditLog)
            .filter(
                AuditLog.created_at >= since,
                AuditLog.entity_type.in_(entity_types),
                AuditLog.action.in_(actions),
            )
            .order_by(AuditLog.created_at.desc())
            .all()
        )

        counts = {action: 0 for action in actions}
        images_deleted = 0
        purges = []
        for entry in entries:
            counts[entry.action] += 1
            metadata = entry.metadata_json or {}
            if entry.action == audit.ITEM_PURGED:
                images_deleted += 1 if metadata.get("image_deleted") else 0
                purges.append(entry.to_dict())
            elif entry.action == audit.USER_PURGED:
                images_deleted += int(metadata.get("images_deleted", 0))
                purges.append(entry.to_dict())

        return DeletionSuccessReport(
            kind=kind,
            period_days=days,
            since=since,
            generated_at=now,
            items_purged=counts[audit.ITEM_PURGED],
            users_purged=counts[audit.USER_PURGED],
            items_cancelled=counts[audit.ITEM_DELETION_CANCELLED],
            users_cancelled=counts[audit.USER_DELETION_CANCELLED],
            total_purged=counts[audit.ITEM_PURGED] + counts[audit.USER_PURGED],
            images_deleted=images_deleted,
            purges=purges,
        )

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def run_job(self, job_name: str) -> RetentionJobStatistics:
        """Run one stage by name, logging and recording metrics.

        Raises:
            ValueError: If job_name is unknown
            Exception: Batch-level failures of the stage propagate
        """
        stages = {
            SEND_ITEM_WARNINGS: self.send_item_deletion_warnings,
            MARK_ITEMS: self.mark_inactive_items_for_deletion,
            DELETE_ITEMS: self.delete_scheduled_items,
            MARK_USERS: self.mark_inactive_users_for_deletion,
            SEND_USER_WARNINGS: self.send_user_deletion_warnings,
            DELETE_USERS: self.delete_scheduled_users,
        }
        if job_name not in stages:
            raise ValueError(f"Unknown retention job '{job_name}'")

        started_at = utcnow()
        started = time.monotonic()
        logger.info(f"Retention job {job_name} started", extra={"job": job_name})

        try:
            results = stages[job_name]()
        except Exception:
            metrics.record_job_run(job_name, "failed", time.monotonic() - started)
            raise

        for result in results:
            metrics.record_entity_outcome(job_name, result.ok)

        statistics = RetentionJobStatistics.from_results(job_name, started_at, utcnow(), results)
        metrics.record_job_run(job_name, "completed", time.monotonic() - started)

        logger.info(
            f"Retention job {job_name} completed: "
            f"{statistics.succeeded} succeeded, {statistics.failed} failed",
            extra={
                "job": job_name,
                "processed": statistics.processed,
                "succeeded": statistics.succeeded,
                "failed": statistics.failed,
                "duration_seconds": statistics.duration_seconds,
            },
        )

        if statistics.is_anomaly:
            logger.warning(
                f"Retention job {job_name} processed an unusually high number of entities",
                extra={"job": job_name, "processed": statistics.processed},
            )

        return statistics

    def run_full_cleanup(self) -> CleanupRunSummary:
        """Run all six stages in schedule order.

        A stage whose selection query fails is logged and recorded in
        failed_stages; the remaining stages still run.
        """
        summary = CleanupRunSummary()

        for job_name in JOB_ORDER:
            try:
                summary.stages.append(self.run_job(job_name))
            except Exception as e:
                self.db.rollback()
                logger.error(
                    f"Retention job {job_name} failed",
                    exc_info=True,
                    extra={"job": job_name, "error": str(e)},
                )
                summary.failed_stages.append(job_name)

        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query_or_rollback(self, query: Callable[[], list]) -> list:
        try:
            return query()
        except Exception:
            self.db.rollback()
            raise

    def _delete_conversations(self, conversation_ids: List[UUID]) -> Tuple[int, int]:
        """Delete conversations with their messages and participant rows.

        Returns:
            (conversations_deleted, messages_deleted)
        """
        if not conversation_ids:
            return 0, 0

        messages_deleted = (
            self.db.query(Message)
            .filter(Message.conversation_id.in_(conversation_ids))
            .delete(synchronize_session=False)
        )
        self.db.execute(
            conversation_participant.delete().where(
                conversation_participant.c.conversation_id.in_(conversation_ids)
            )
        )
        conversations_deleted = (
            self.db.query(Conversation)
            .filter(Conversation.id.in_(conversation_ids))
            .delete(synchronize_session=False)
        )
        return conversations_deleted, messages_deleted

    @staticmethod
    def _item_snapshot(item: Item) -> Dict:
        return {"item_id": item.id, "title": item.title, "owner": item.owner_email}

    @staticmethod
    def _user_snapshot(user: User) -> Dict:
        return {"user_id": user.id, "email": user.email}

    @staticmethod
    def _item_identity(item: Item) -> Dict:
        # Identity key only; the row may be gone
        return {"item_id": inspect(item).identity[0], "title": "", "owner": "Unknown"}

    @staticmethod
    def _user_identity(user: User) -> Dict:
        return {"user_id": inspect(user).identity[0], "email": ""}


def build_retention_service(
    db: Session,
    settings=None,
    mailer: Optional[EmailSenderPort] = None,
    image_store: Optional[ImageStorePort] = None,
) -> RetentionService:
    """Create a RetentionService wired from application settings.

    Args:
        db: Database session
        settings: Application Settings (defaults to get_settings())
        mailer: Override the HTTP mailer
        image_store: Override the configured image store
    """
    from ..config import get_settings
    from ..infrastructure.images import build_image_store
    from ..notifications.mailer import HttpMailer

    settings = settings or get_settings()

    if mailer is None:
        mailer = HttpMailer(
            url=settings.MAILSERVER_URL,
            sender=settings.EMAIL_FROM,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
    if image_store is None:
        image_store = build_image_store(settings)

    return RetentionService(
        db=db,
        settings=RetentionSettings.from_app_settings(settings),
        mailer=mailer,
        image_store=image_store,
    )
