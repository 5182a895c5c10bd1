import asyncio
import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.services.notifications import relay
from tests.support import create_test_database


class RelayTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, self.factory = await create_test_database()

    async def asyncTearDown(self):
        relay.stop_relay()
        await self.engine.dispose()

    async def test_relay_keeps_running_after_database_error(self):
        passes = []
        third_pass = asyncio.Event()

        async def fake_relay_pending(db):
            passes.append(db)
            if len(passes) == 1:
                raise OperationalError("SELECT 1", {}, Exception("connection reset"))
            if len(passes) >= 3:
                third_pass.set()
            return 0

        with patch.object(relay, "relay_pending", fake_relay_pending), patch.object(
            relay, "async_session_factory", self.factory
        ):
            with self.assertLogs("app.services.notifications.relay", level="ERROR"):
                relay.start_relay(interval=0.01)
                await asyncio.wait_for(third_pass.wait(), timeout=2)
            relay.stop_relay()

        self.assertGreaterEqual(len(passes), 3)

    async def test_relay_keeps_running_after_unexpected_error(self):
        passes = []
        second_pass = asyncio.Event()

        async def fake_relay_pending(db):
            passes.append(db)
            if len(passes) == 1:
                raise KeyError("user_id")
            second_pass.set()
            return 0

        with patch.object(relay, "relay_pending", fake_relay_pending), patch.object(
            relay, "async_session_factory", self.factory
        ):
            with self.assertLogs("app.services.notifications.relay", level="ERROR") as logs:
                relay.start_relay(interval=0.01)
                await asyncio.wait_for(second_pass.wait(), timeout=2)
            task = relay._relay_task
            self.assertFalse(task.done())
            relay.stop_relay()

        self.assertIn("Error during outbox relay pass", logs.output[0])

    async def test_start_is_idempotent_and_stop_cancels(self):
        async def fake_relay_pending(db):
            return 0

        with patch.object(relay, "relay_pending", fake_relay_pending), patch.object(
            relay, "async_session_factory", self.factory
        ):
            relay.start_relay(interval=10)
            task = relay._relay_task
            with self.assertLogs("app.services.notifications.relay", level="WARNING"):
                relay.start_relay(interval=10)
            self.assertIs(relay._relay_task, task)

            relay.stop_relay()
            self.assertIsNone(relay._relay_task)
            with self.assertRaises(asyncio.CancelledError):
                await task


if __name__ == "__main__":
    unittest.main()
