"""Integration tests for the user lifecycle: strategy mark -> warn -> cascading purge."""

import uuid
from datetime import timedelta

import pytest

from campustrack.audit import service as audit
from campustrack.models import AuditLog, Conversation, Item, Message, Notification, User
from campustrack.retention.service import NotFoundError

pytestmark = pytest.mark.integration


def _schedule(db_session, user, at, warned=False):
    user.schedule_deletion(at)
    user.deletion_warning_email_sent = warned
    db_session.commit()


class TestInactivityStrategy:

    def test_marks_users_idle_past_threshold(self, db_session, service, clock, make_user):
        idle = make_user(email="idle@campus.edu", last_login_date=clock.now - timedelta(days=61))
        make_user(email="recent@campus.edu", last_login_date=clock.now - timedelta(days=10))
        make_user(
            email="deactivated@campus.edu",
            is_active=False,
            deactivated_at=clock.now - timedelta(days=90),
            last_login_date=clock.now - timedelta(days=90),
        )

        results = service.mark_inactive_users_for_deletion()

        assert [r.email for r in results] == ["idle@campus.edu"]
        assert results[0].strategy == "inactivity"
        db_session.refresh(idle)
        assert idle.scheduled_for_deletion is True
        assert idle.deletion_scheduled_at == clock.now
        assert idle.deletion_warning_email_sent is False

    def test_admin_is_never_marked(self, service, clock, make_user):
        make_user(role="admin", last_login_date=clock.now - timedelta(days=400))

        assert service.mark_inactive_users_for_deletion() == []

    def test_second_run_marks_nothing(self, service, clock, make_user):
        make_user(last_login_date=clock.now - timedelta(days=61))

        assert len(service.mark_inactive_users_for_deletion()) == 1
        assert service.mark_inactive_users_for_deletion() == []


class TestDeactivationStrategy:

    def test_marks_users_deactivated_past_threshold(self, make_service, clock, make_user):
        service = make_service(user_deletion_strategy="deactivation")
        make_user(
            email="left@campus.edu",
            is_active=False,
            deactivated_at=clock.now - timedelta(days=61),
        )
        make_user(
            email="just-left@campus.edu",
            is_active=False,
            deactivated_at=clock.now - timedelta(days=5),
        )
        make_user(email="idle@campus.edu", last_login_date=clock.now - timedelta(days=200))

        results = service.mark_inactive_users_for_deletion()

        assert [r.email for r in results] == ["left@campus.edu"]
        assert results[0].strategy == "deactivation"
        assert results[0].deactivated_at == clock.now - timedelta(days=61)

    def test_deactivation_timestamp_drives_selection(self, db_session, make_service, clock, make_user):
        service = make_service(user_deletion_strategy="deactivation")
        user = make_user(email="closing@campus.edu")
        user.deactivate(clock.now - timedelta(days=61))
        user.deactivate(clock.now)
        db_session.commit()

        results = service.mark_inactive_users_for_deletion()

        assert [r.email for r in results] == ["closing@campus.edu"]

    def test_admin_is_never_marked(self, make_service, clock, make_user):
        service = make_service(user_deletion_strategy="deactivation")
        make_user(role="admin", is_active=False, deactivated_at=clock.now - timedelta(days=400))

        assert service.mark_inactive_users_for_deletion() == []

    def test_reactivate_clears_deactivation_timestamp(self, db_session, make_service, clock, make_user):
        service = make_service(user_deletion_strategy="deactivation")
        user = make_user(is_active=False, deactivated_at=clock.now - timedelta(days=61))

        user.reactivate()
        db_session.commit()

        assert user.is_active is True
        assert user.deactivated_at is None
        assert service.mark_inactive_users_for_deletion() == []


class TestUserWarnings:

    def test_one_warning_per_user(self, db_session, service, clock, mailer, make_user):
        user = make_user(name="Grace", email="grace@campus.edu")
        _schedule(db_session, user, clock.now - timedelta(days=2))

        first = service.send_user_deletion_warnings()
        second = service.send_user_deletion_warnings()

        assert [(r.kind, r.days_remaining) for r in first] == [("warned", 5)]
        assert second == []
        assert mailer.recipients() == ["grace@campus.edu"]
        assert "Hello Grace," in mailer.sent[0]["html"]
        db_session.refresh(user)
        assert user.deletion_warning_email_sent is True

    def test_user_past_grace_is_not_warned(self, db_session, service, clock, mailer, make_user):
        user = make_user()
        _schedule(db_session, user, clock.now - timedelta(days=7, hours=1))

        assert service.send_user_deletion_warnings() == []
        assert mailer.sent == []
        db_session.refresh(user)
        assert user.deletion_warning_email_sent is False

    def test_failed_send_is_retried_next_run(self, db_session, service, clock, mailer, make_user):
        user = make_user(email="flaky@campus.edu")
        _schedule(db_session, user, clock.now - timedelta(days=1))
        mailer.fail_for.add("flaky@campus.edu")

        failed = service.send_user_deletion_warnings()

        assert failed[0].kind == "failed"
        assert failed[0].email_sent is False
        db_session.refresh(user)
        assert user.deletion_warning_email_sent is False

        mailer.fail_for.clear()
        retried = service.send_user_deletion_warnings()

        assert retried[0].kind == "warned"
        assert mailer.recipients() == ["flaky@campus.edu"]


class TestDeleteScheduledUsers:

    def test_purge_cascades_to_everything_the_user_owns(
        self, db_session, service, clock, image_store,
        make_user, make_item, make_conversation, make_notification,
    ):
        leaver = make_user(email="leaver@campus.edu")
        other = make_user(email="other@campus.edu")
        own_1 = make_item(owner=leaver, image="https://img.test/items/a.jpg")
        own_2 = make_item(owner=leaver, image="https://img.test/items/b.jpg")
        theirs = make_item(owner=other, title="Headphones")
        make_conversation(own_1, [leaver, other], messages=3)
        make_conversation(theirs, [leaver, other], messages=2)
        make_notification(other, item=own_1)
        make_notification(leaver, item=theirs)
        make_notification(other, sender=leaver)
        make_notification(other, item=theirs)
        _schedule(db_session, leaver, clock.now - timedelta(days=8), warned=True)
        leaver_id = leaver.id
        own_ids = [own_1.id, own_2.id]

        results = service.delete_scheduled_users()

        assert len(results) == 1
        result = results[0]
        assert result.kind == "purged"
        assert result.success is True
        assert result.items_deleted == 2
        assert result.conversations_deleted == 2
        assert result.messages_deleted == 5
        assert result.notifications_deleted == 3
        assert result.images_deleted == 2
        assert sorted(image_store.deleted) == ["items/a.jpg", "items/b.jpg"]

        assert db_session.query(User).filter(User.id == leaver_id).count() == 0
        assert db_session.query(Item).filter(Item.id.in_(own_ids)).count() == 0
        assert [i.title for i in db_session.query(Item).all()] == ["Headphones"]
        assert db_session.query(Conversation).count() == 0
        assert db_session.query(Message).count() == 0
        assert db_session.query(Notification).count() == 1

        entry = db_session.query(AuditLog).filter(AuditLog.entity_id == leaver_id).one()
        assert entry.action == audit.USER_PURGED
        assert entry.metadata_json["items_deleted"] == 2

    def test_grace_period_boundary(self, db_session, service, clock, make_user):
        on_boundary = make_user(email="on@campus.edu")
        past_boundary = make_user(email="past@campus.edu")
        _schedule(db_session, on_boundary, clock.now - timedelta(days=7))
        _schedule(db_session, past_boundary, clock.now - timedelta(days=7, milliseconds=1))

        results = service.delete_scheduled_users()

        assert [r.email for r in results] == ["past@campus.edu"]
        assert db_session.query(User).count() == 1

    def test_scheduled_admin_is_never_purged(self, db_session, service, clock, make_user):
        admin = make_user(role="admin")
        _schedule(db_session, admin, clock.now - timedelta(days=30))

        assert service.delete_scheduled_users() == []
        assert db_session.query(User).count() == 1

    def test_failure_rolls_back_that_user_only(self, db_session, service, clock, image_store, make_user, make_item):
        broken = make_user(email="broken@campus.edu")
        fine = make_user(email="fine@campus.edu")
        make_item(owner=broken, image="https://img.test/items/stuck.jpg")
        make_item(owner=fine)
        _schedule(db_session, broken, clock.now - timedelta(days=9))
        _schedule(db_session, fine, clock.now - timedelta(days=8))
        image_store.raise_for.add("items/stuck.jpg")

        results = service.delete_scheduled_users()

        assert [(r.email, r.success) for r in results] == [
            ("broken@campus.edu", False),
            ("fine@campus.edu", True),
        ]
        remaining = db_session.query(User).one()
        assert remaining.email == "broken@campus.edu"
        assert remaining.scheduled_for_deletion is True
        assert db_session.query(Item).count() == 1


class TestCancelUserDeletion:

    def test_cancel_resets_every_flag(self, db_session, service, clock, make_user):
        user = make_user(last_login_date=clock.now - timedelta(days=65))
        _schedule(db_session, user, clock.now - timedelta(days=3), warned=True)

        cancelled = service.cancel_user_deletion(user.id)

        assert cancelled.scheduled_for_deletion is False
        assert cancelled.deletion_scheduled_at is None
        assert cancelled.deletion_warning_email_sent is False
        assert cancelled.last_login_date == clock.now
        entry = db_session.query(AuditLog).one()
        assert entry.action == audit.USER_DELETION_CANCELLED
        assert entry.metadata_json["previous_state"] == "WARNED"
        assert service.mark_inactive_users_for_deletion() == []

    def test_cancelled_idle_user_is_not_marked_again_next_day(self, db_session, service, clock, make_user):
        user = make_user(last_login_date=clock.now - timedelta(days=61))
        assert len(service.mark_inactive_users_for_deletion()) == 1

        service.cancel_user_deletion(user.id)
        clock.advance(days=1)

        assert service.mark_inactive_users_for_deletion() == []
        clock.advance(days=60)
        assert len(service.mark_inactive_users_for_deletion()) == 1

    def test_cancelled_deactivated_user_is_not_marked_again_next_day(
        self, db_session, make_service, clock, make_user,
    ):
        service = make_service(user_deletion_strategy="deactivation")
        user = make_user(is_active=False, deactivated_at=clock.now - timedelta(days=61))
        assert len(service.mark_inactive_users_for_deletion()) == 1

        cancelled = service.cancel_user_deletion(user.id)

        assert cancelled.is_active is False
        assert cancelled.deactivated_at == clock.now
        clock.advance(days=1)
        assert service.mark_inactive_users_for_deletion() == []
        clock.advance(days=60)
        assert len(service.mark_inactive_users_for_deletion()) == 1

    def test_login_reactivates_deactivated_account(self, db_session, make_service, clock, make_user):
        service = make_service(user_deletion_strategy="deactivation")
        user = make_user(is_active=False, deactivated_at=clock.now - timedelta(days=61))
        service.mark_inactive_users_for_deletion()

        logged_in = service.record_user_login(user.id)

        assert logged_in.is_active is True
        assert logged_in.deactivated_at is None
        assert logged_in.scheduled_for_deletion is False
        clock.advance(days=400)
        assert service.mark_inactive_users_for_deletion() == []

    def test_login_rescues_scheduled_account(self, db_session, service, clock, make_user):
        user = make_user()
        _schedule(db_session, user, clock.now - timedelta(days=1))

        service.record_user_login(user.id)

        entry = db_session.query(AuditLog).one()
        assert entry.actor == "login"
        assert entry.metadata_json["previous_state"] == "MARKED_FOR_DELETION"

    def test_login_of_active_user_writes_no_audit(self, db_session, service, make_user):
        user = make_user()

        service.record_user_login(user.id)

        assert db_session.query(AuditLog).count() == 0

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError, match="User .* not found"):
            service.cancel_user_deletion(uuid.uuid4())
