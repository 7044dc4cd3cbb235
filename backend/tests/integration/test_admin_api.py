"""Integration tests for the retention admin API."""

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from campustrack.config import Settings, get_settings
from campustrack.database import get_db
from campustrack.dependencies import get_retention_service
from campustrack.main import app
from campustrack.retention import router as retention_router

pytestmark = pytest.mark.integration

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}
BASE = "/api/v1/admin/retention"


@pytest.fixture
def client(db_session, service):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_retention_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: Settings(ADMIN_API_KEY="test-admin-key")

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class TestAdminKey:

    def test_missing_key_is_forbidden(self, client):
        response = client.get(f"{BASE}/scheduled-items")

        assert response.status_code == 403

    def test_wrong_key_is_forbidden(self, client):
        response = client.get(f"{BASE}/config", headers={"X-Admin-Key": "guess"})

        assert response.status_code == 403

    def test_unconfigured_key_disables_api(self, client):
        app.dependency_overrides[get_settings] = lambda: Settings(ADMIN_API_KEY=None)

        response = client.get(f"{BASE}/config", headers=ADMIN_HEADERS)

        assert response.status_code == 503


class TestScheduledDeletionEndpoints:

    def test_list_and_cancel_item(self, client, db_session, clock, make_user, make_item):
        owner = make_user(email="owner@campus.edu")
        item = make_item(owner=owner, title="Laptop charger")
        item.schedule_deletion(clock.now - timedelta(days=2))
        db_session.commit()

        listed = client.get(f"{BASE}/scheduled-items", headers=ADMIN_HEADERS).json()

        assert listed["count"] == 1
        assert listed["items"][0]["title"] == "Laptop charger"
        assert listed["items"][0]["owner"] == "owner@campus.edu"

        response = client.post(f"{BASE}/items/{item.id}/cancel-deletion", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["item"]["scheduled_for_deletion"] is False
        assert client.get(f"{BASE}/scheduled-items", headers=ADMIN_HEADERS).json()["count"] == 0

    def test_list_and_cancel_user(self, client, db_session, clock, make_user):
        user = make_user(email="sleepy@campus.edu")
        user.schedule_deletion(clock.now - timedelta(days=1))
        db_session.commit()

        listed = client.get(f"{BASE}/scheduled-users", headers=ADMIN_HEADERS).json()
        assert [u["email"] for u in listed["users"]] == ["sleepy@campus.edu"]

        response = client.post(f"{BASE}/users/{user.id}/cancel-deletion", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["user"]["scheduled_for_deletion"] is False

    @pytest.mark.parametrize("entity", ["items", "users"])
    def test_cancel_unknown_entity(self, client, entity):
        response = client.post(f"{BASE}/{entity}/{uuid4()}/cancel-deletion", headers=ADMIN_HEADERS)

        assert response.status_code == 404
        assert "not found" in response.json()["detail"]


class TestReportEndpoints:

    def test_config(self, client):
        body = client.get(f"{BASE}/config", headers=ADMIN_HEADERS).json()

        assert body["user_deletion_strategy"] == "inactivity"
        assert body["inactivity_days"] == 60
        assert body["grace_period_days"] == 7

    def test_scheduled_reports(self, client):
        items = client.get(f"{BASE}/reports/scheduled-items", headers=ADMIN_HEADERS).json()
        users = client.get(f"{BASE}/reports/scheduled-users", headers=ADMIN_HEADERS).json()

        assert items["count"] == 0
        assert users["deletion_strategy"] == "inactivity"

    def test_deletion_success_report_filters_by_type(self, client):
        response = client.get(
            f"{BASE}/reports/deletion-success",
            params={"days": 7, "type": "users"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["kind"] == "users"
        assert response.json()["period_days"] == 7

    @pytest.mark.parametrize("params", [{"days": 0}, {"type": "everything"}])
    def test_deletion_success_report_validation(self, client, params):
        response = client.get(f"{BASE}/reports/deletion-success", params=params, headers=ADMIN_HEADERS)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


class TestTriggerCleanup:

    def test_enqueues_full_run(self, client, monkeypatch):
        calls = []

        def delay():
            calls.append(True)
            return SimpleNamespace(id="task-123")

        monkeypatch.setattr(retention_router, "run_full_cleanup_task", SimpleNamespace(delay=delay))

        response = client.post(f"{BASE}/trigger-cleanup", headers=ADMIN_HEADERS)

        assert response.status_code == 202
        assert response.json() == {"status": "enqueued", "task_id": "task-123"}
        assert calls == [True]


class TestHealth:

    def test_health_reports_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["components"]["database"]["status"] == "healthy"

    def test_metrics_exposed(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "campustrack_retention_job_runs_total" in response.text
