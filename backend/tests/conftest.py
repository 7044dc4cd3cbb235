"""Pytest fixtures for the retention engine.

Provides reusable test fixtures for:
- In-memory SQLite database session (tables created/dropped per test)
- A controllable clock injected into RetentionService
- Fake email sender and image store recording every call
- Factories for users, items, conversations and notifications

Usage:
    def test_mark(service, make_item, clock):
        item = make_item(last_activity_date=clock.now - timedelta(days=61))
        results = service.mark_inactive_items_for_deletion()
        assert results[0].item_id == item.id
"""

import os

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("LOG_JSON", "false")

from datetime import datetime, timedelta
from typing import Generator, List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from campustrack.domain.retention.ports import (
    AssetDeletionResult,
    EmailSenderPort,
    ImageStorePort,
)
from campustrack.models import (
    Base,
    Conversation,
    Item,
    Message,
    Notification,
    User,
)
from campustrack.retention.schemas import RetentionSettings
from campustrack.retention.service import RetentionService

NOW = datetime(2026, 3, 15, 12, 0, 0)

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(test_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeMailer(EmailSenderPort):
    """Records sent emails; raises for addresses listed in fail_for."""

    def __init__(self):
        self.sent: List[dict] = []
        self.fail_for = set()

    def send_email(self, to: str, subject: str, html: str) -> None:
        if to in self.fail_for:
            raise RuntimeError(f"SMTP relay rejected {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def recipients(self) -> List[str]:
        return [mail["to"] for mail in self.sent]


class FakeImageStore(ImageStorePort):
    """Image store for URLs of the form https://img.test/<asset_id>.

    Assets in raise_for make delete_assets raise; assets in fail_for are
    reported as failed deletions.
    """

    PREFIX = "https://img.test/"

    def __init__(self):
        self.deleted: List[str] = []
        self.raise_for = set()
        self.fail_for = set()

    def extract_asset_id(self, url: Optional[str]) -> Optional[str]:
        if not url or not url.startswith(self.PREFIX):
            return None
        return url[len(self.PREFIX):]

    def delete_assets(self, asset_ids: List[str]) -> List[AssetDeletionResult]:
        results = []
        for asset_id in asset_ids:
            if asset_id in self.raise_for:
                raise ConnectionError(f"image host unreachable while deleting {asset_id}")
            if asset_id in self.fail_for:
                results.append(AssetDeletionResult(asset_id=asset_id, success=False, error="denied"))
                continue
            self.deleted.append(asset_id)
            results.append(AssetDeletionResult(asset_id=asset_id, success=True))
        return results


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def image_store() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture
def retention_settings() -> RetentionSettings:
    return RetentionSettings(
        user_deletion_strategy="inactivity",
        frontend_url="https://campustrack.test",
    )


@pytest.fixture
def make_service(db_session, mailer, image_store, clock):
    """Build a RetentionService with fakes; keyword args override settings."""

    def _make(**overrides) -> RetentionService:
        settings = RetentionSettings(
            user_deletion_strategy=overrides.pop("user_deletion_strategy", "inactivity"),
            frontend_url="https://campustrack.test",
            **overrides,
        )
        return RetentionService(
            db=db_session,
            settings=settings,
            mailer=mailer,
            image_store=image_store,
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service) -> RetentionService:
    return make_service()


@pytest.fixture
def make_user(db_session, clock):
    counter = {"n": 0}

    def _make(**fields) -> User:
        counter["n"] += 1
        n = counter["n"]
        fields.setdefault("name", f"Student {n}")
        fields.setdefault("email", f"student{n}@campus.edu")
        fields.setdefault("last_login_date", clock.now)
        user = User(**fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_item(db_session, clock):
    counter = {"n": 0}

    def _make(owner: Optional[User] = None, **fields) -> Item:
        counter["n"] += 1
        fields.setdefault("title", f"Lost item {counter['n']}")
        fields.setdefault("last_activity_date", clock.now)
        item = Item(posted_by_id=owner.id if owner else None, **fields)
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make


@pytest.fixture
def make_conversation(db_session):
    """Create a conversation about an item with the given participants and messages."""

    def _make(item: Item, participants: List[User], messages: int = 0) -> Conversation:
        conversation = Conversation(item_id=item.id)
        conversation.participants = list(participants)
        db_session.add(conversation)
        db_session.flush()
        for i in range(messages):
            db_session.add(Message(
                conversation_id=conversation.id,
                sender_id=participants[i % len(participants)].id,
                content=f"message {i}",
            ))
        db_session.commit()
        db_session.refresh(conversation)
        return conversation

    return _make


@pytest.fixture
def make_notification(db_session):
    def _make(recipient: User, item: Optional[Item] = None, sender: Optional[User] = None) -> Notification:
        notification = Notification(
            user_id=recipient.id,
            sender_id=sender.id if sender else None,
            item_id=item.id if item else None,
            message="Someone replied about your item",
        )
        db_session.add(notification)
        db_session.commit()
        return notification

    return _make
