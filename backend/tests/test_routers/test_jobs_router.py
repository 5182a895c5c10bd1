import unittest
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace as Obj
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.context import RequestContext
from app.core.dependencies import get_db, get_request_context
from app.core.exceptions import ValidationError
from app.main import app
from app.services.notifications.digests import DigestReport

ORG_ID = uuid.uuid4()
USER_ID = uuid.uuid4()


class FakeDB:
    async def commit(self): ...
    async def rollback(self): ...


async def _fake_db():
    yield FakeDB()


class JobsRouterTests(unittest.TestCase):
    def setUp(self):
        app.dependency_overrides[get_db] = _fake_db
        self.secret_patch = patch.object(settings, "JOB_SECRET", "cron-secret")
        self.secret_patch.start()
        self.client = TestClient(app)

    def tearDown(self):
        self.secret_patch.stop()
        app.dependency_overrides.pop(get_db, None)

    @patch("app.api.v1.jobs.send_pending_reminders", new_callable=AsyncMock)
    def test_reminders_with_secret(self, mock_send):
        mock_send.return_value = DigestReport(sent=2, skipped=1, failed=0)
        resp = self.client.post(
            "/api/v1/jobs/pending-reminders", headers={"X-Job-Secret": "cron-secret"}
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json(), {"sent": 2, "skipped": 1, "failed": 0})

    @patch("app.api.v1.jobs.send_weekly_summaries", new_callable=AsyncMock)
    def test_weekly_summary_with_secret(self, mock_send):
        mock_send.return_value = DigestReport(sent=5)
        resp = self.client.post(
            "/api/v1/jobs/weekly-summary", headers={"X-Job-Secret": "cron-secret"}
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["sent"], 5)

    @patch("app.api.v1.jobs.send_pending_reminders", new_callable=AsyncMock)
    def test_missing_or_wrong_secret_is_401(self, mock_send):
        self.assertEqual(self.client.post("/api/v1/jobs/pending-reminders").status_code, 401)
        resp = self.client.post(
            "/api/v1/jobs/pending-reminders", headers={"X-Job-Secret": "guess"}
        )
        self.assertEqual(resp.status_code, 401)
        mock_send.assert_not_awaited()

    @patch("app.api.v1.jobs.send_pending_reminders", new_callable=AsyncMock)
    def test_unconfigured_secret_disables_jobs(self, mock_send):
        with patch.object(settings, "JOB_SECRET", None):
            resp = self.client.post(
                "/api/v1/jobs/pending-reminders", headers={"X-Job-Secret": "anything"}
            )
        self.assertEqual(resp.status_code, 401)
        mock_send.assert_not_awaited()


class OutboxRouterTests(unittest.TestCase):
    def setUp(self):
        self.role = "admin"
        app.dependency_overrides[get_db] = _fake_db
        app.dependency_overrides[get_request_context] = lambda: RequestContext(
            user_id=USER_ID, organization_id=ORG_ID, role=self.role
        )
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_request_context, None)

    def _event(self, **kwargs):
        values = dict(
            id=uuid.uuid4(),
            event_type="balance.apply",
            payload={"request_id": str(uuid.uuid4())},
            status="failed",
            attempts=1,
            last_error="insufficient balance: 0 day(s) remaining, 2 requested",
            created_at=datetime(2026, 10, 19, tzinfo=timezone.utc),
            processed_at=None,
        )
        values.update(kwargs)
        return Obj(**values)

    @patch("app.api.v1.outbox.list_events", new_callable=AsyncMock)
    def test_admin_lists_failed_events(self, mock_list):
        mock_list.return_value = [self._event()]
        resp = self.client.get("/api/v1/outbox?status=failed")
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()[0]["status"], "failed")
        self.assertEqual(mock_list.call_args.args[1:], (ORG_ID, "failed", 100))

    def test_manager_cannot_see_outbox(self):
        self.role = "manager"
        self.assertEqual(self.client.get("/api/v1/outbox").status_code, 403)

    @patch("app.api.v1.outbox.retry_event", new_callable=AsyncMock)
    def test_retry(self, mock_retry):
        event = self._event(status="done", attempts=2, last_error=None)
        mock_retry.return_value = event
        resp = self.client.post(f"/api/v1/outbox/{event.id}/retry")
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["status"], "done")

    @patch("app.api.v1.outbox.retry_event", new_callable=AsyncMock)
    def test_retry_of_non_failed_event_is_400(self, mock_retry):
        mock_retry.side_effect = ValidationError("Only failed events can be retried (status is done)")
        resp = self.client.post(f"/api/v1/outbox/{uuid.uuid4()}/retry")
        self.assertEqual(resp.status_code, 400)


class OrganizationRouterTests(unittest.TestCase):
    def setUp(self):
        self.role = "employee"
        app.dependency_overrides[get_db] = _fake_db
        app.dependency_overrides[get_request_context] = lambda: RequestContext(
            user_id=USER_ID, organization_id=ORG_ID, role=self.role
        )
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_request_context, None)

    def test_only_admin_updates_org(self):
        resp = self.client.put("/api/v1/org", json={"name": "Renamed"})
        self.assertEqual(resp.status_code, 403)

    @patch("app.api.v1.organizations.update_organization", new_callable=AsyncMock)
    def test_update_passes_only_sent_fields(self, mock_update):
        self.role = "admin"
        mock_update.return_value = Obj(
            id=ORG_ID,
            name="Renamed",
            slug="renamed",
            country_code="PL",
            locale="pl",
            google_domain=None,
            require_google_domain=False,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        resp = self.client.put("/api/v1/org", json={"name": "Renamed", "slug": "renamed"})
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(mock_update.call_args.args[2], {"name": "Renamed", "slug": "renamed"})


if __name__ == "__main__":
    unittest.main()
