import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from app.models import UserSettings
from app.services.notifications.dispatcher import (
    PREFERENCE_DISABLED,
    NotificationPreferences,
    notify,
)
from tests.support import create_test_database, make_org, make_user


class PreferenceTests(unittest.TestCase):
    def test_master_switch_gates_every_preference_event(self):
        prefs = NotificationPreferences(email_notifications=False)
        for event_type in ("leave_request", "team_leave", "leave_reminder", "weekly_summary"):
            self.assertFalse(prefs.allows(event_type))
        self.assertTrue(prefs.allows("invitation"))

    def test_individual_switches(self):
        prefs = NotificationPreferences(team_leave_notifications=False, weekly_summary=False)
        self.assertTrue(prefs.allows("leave_request"))
        self.assertFalse(prefs.allows("team_leave"))
        self.assertFalse(prefs.allows("weekly_summary"))
        self.assertTrue(prefs.allows("leave_reminder"))


class NotifyTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, factory = await create_test_database()
        self.db = factory()
        org = make_org(self.db, "Org One")
        await self.db.flush()
        self.user = make_user(self.db, org, "alice@one.com")
        await self.db.flush()
        self.db.add(UserSettings(user_id=self.user.id, team_leave_notifications=False))
        await self.db.commit()

        self.email = MagicMock()
        self.email.is_configured = True
        self.email.send_email = AsyncMock(return_value=True)
        self.email_patch = patch(
            "app.services.notifications.dispatcher.email_service", new=self.email
        )
        self.email_patch.start()

    async def asyncTearDown(self):
        self.email_patch.stop()
        await self.db.close()
        await self.engine.dispose()

    def _payload(self, **kwargs):
        payload = {
            "to": "alice@one.com",
            "user_id": str(self.user.id),
            "employee_name": "Alice",
            "leave_type": "Annual",
            "start_date": "2026-06-01",
            "end_date": "2026-06-02",
            "status": "approved",
        }
        payload.update(kwargs)
        return payload

    async def test_sends_rendered_email(self):
        result = await notify(self.db, "leave_request", self._payload(review_comment="Have fun"))
        self.assertTrue(result.success)

        kwargs = self.email.send_email.call_args.kwargs
        self.assertEqual(kwargs["to"], "alice@one.com")
        self.assertEqual(kwargs["subject"], "Your leave request was approved")
        self.assertIn("2026-06-01", kwargs["body_text"])
        self.assertIn("Have fun", kwargs["body_text"])

    async def test_disabled_preference_skips_delivery(self):
        result = await notify(self.db, "team_leave", self._payload())
        self.assertFalse(result.success)
        self.assertEqual(result.reason, PREFERENCE_DISABLED)
        self.assertFalse(result.retryable)
        self.email.send_email.assert_not_called()

    async def test_unknown_event_type(self):
        result = await notify(self.db, "birthday", self._payload())
        self.assertFalse(result.success)
        self.assertIn("birthday", result.reason)

    async def test_missing_recipient(self):
        result = await notify(self.db, "leave_request", self._payload(to=None))
        self.assertEqual(result.reason, "Missing recipient")

    async def test_unconfigured_email_is_not_retryable(self):
        self.email.is_configured = False
        result = await notify(self.db, "leave_request", self._payload())
        self.assertEqual(result.reason, "Email not configured")
        self.assertFalse(result.retryable)

    async def test_transport_failure_is_retryable(self):
        self.email.send_email.return_value = False
        result = await notify(self.db, "leave_request", self._payload())
        self.assertFalse(result.success)
        self.assertTrue(result.retryable)

    async def test_unexpected_error_never_raises(self):
        self.email.send_email.side_effect = RuntimeError("socket closed")
        with self.assertLogs("app.services.notifications.dispatcher", level="ERROR"):
            result = await notify(self.db, "leave_request", self._payload())
        self.assertEqual(result.reason, "Internal error")
        self.assertTrue(result.retryable)

    async def test_invitation_is_not_preference_gated(self):
        result = await notify(
            self.db,
            "invitation",
            {"to": "new@one.com", "organization_name": "Org One", "invite_url": "http://x/t"},
        )
        self.assertTrue(result.success)
        self.assertIn("http://x/t", self.email.send_email.call_args.kwargs["body_text"])


if __name__ == "__main__":
    unittest.main()
