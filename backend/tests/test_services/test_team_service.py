import unittest
import uuid

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.services import teams as team_service
from tests.support import context_for, create_test_database, make_org, make_team, make_user


class TeamServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, factory = await create_test_database()
        self.db = factory()

        self.org = make_org(self.db, "Org One")
        self.other_org = make_org(self.db, "Org Two")
        await self.db.flush()
        self.admin = make_user(self.db, self.org, "admin@one.com", role="admin")
        self.manager = make_user(self.db, self.org, "manager@one.com", role="manager")
        self.other_manager = make_user(self.db, self.org, "other@one.com", role="manager")
        self.dev = make_user(self.db, self.org, "dev@one.com")
        self.tester = make_user(self.db, self.org, "tester@one.com")
        self.outsider = make_user(self.db, self.other_org, "zed@two.com")
        await self.db.flush()
        self.team = make_team(self.db, self.org, "Engineering", manager=self.manager)
        self.sales = make_team(self.db, self.org, "Sales", manager=self.other_manager)
        await self.db.commit()

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    async def test_admin_manages_team_lifecycle(self):
        ctx = context_for(self.admin)
        team = await team_service.create_team(self.db, ctx, "Support", "Help desk", self.manager.id)
        self.assertEqual(team.organization_id, self.org.id)

        team = await team_service.update_team(self.db, ctx, team.id, {"name": "Customer Support"})
        self.assertEqual(team.name, "Customer Support")

        await team_service.add_members(self.db, ctx, team.id, [self.dev.id])
        await team_service.delete_team(self.db, ctx, team.id)
        await self.db.refresh(self.dev)
        self.assertIsNone(self.dev.team_id)
        with self.assertRaises(NotFoundError):
            await team_service.get_team(self.db, self.org.id, team.id)

    async def test_only_admin_creates_teams(self):
        with self.assertRaises(ForbiddenError):
            await team_service.create_team(self.db, context_for(self.manager), "Shadow")

    async def test_manager_must_belong_to_org(self):
        with self.assertRaises(ValidationError):
            await team_service.create_team(
                self.db, context_for(self.admin), "Mixed", manager_id=self.outsider.id
            )

    async def test_manager_adds_and_removes_members(self):
        ctx = context_for(self.manager)
        added = await team_service.add_members(
            self.db, ctx, self.team.id, [self.dev.id, self.tester.id, self.outsider.id]
        )
        self.assertEqual({u.id for u in added}, {self.dev.id, self.tester.id})

        members = await team_service.list_members(self.db, self.org.id, self.team.id)
        self.assertEqual([m.email for m in members], ["dev@one.com", "tester@one.com"])
        counts = await team_service.member_counts(self.db, self.org.id)
        self.assertEqual(counts[self.team.id], 2)

        removed = await team_service.remove_members(self.db, ctx, self.team.id, [self.dev.id])
        self.assertEqual([u.id for u in removed], [self.dev.id])
        self.assertIsNone(self.dev.team_id)
        self.assertEqual(self.tester.team_id, self.team.id)

    async def test_remove_ignores_members_of_other_teams(self):
        await team_service.add_members(self.db, context_for(self.admin), self.sales.id, [self.dev.id])
        removed = await team_service.remove_members(
            self.db, context_for(self.manager), self.team.id, [self.dev.id]
        )
        self.assertEqual(removed, [])
        self.assertEqual(self.dev.team_id, self.sales.id)

    async def test_manager_cannot_touch_other_team(self):
        with self.assertRaises(ForbiddenError):
            await team_service.add_members(
                self.db, context_for(self.manager), self.sales.id, [self.dev.id]
            )
        with self.assertRaises(ForbiddenError):
            await team_service.add_members(
                self.db, context_for(self.dev), self.team.id, [self.tester.id]
            )

    async def test_empty_member_list_is_refused(self):
        with self.assertRaises(ValidationError):
            await team_service.add_members(self.db, context_for(self.admin), self.team.id, [])

    async def test_unknown_team(self):
        with self.assertRaises(NotFoundError):
            await team_service.add_members(
                self.db, context_for(self.admin), uuid.uuid4(), [self.dev.id]
            )

    async def test_list_teams_is_tenant_scoped(self):
        make_team(self.db, self.other_org, "Foreign")
        await self.db.flush()
        teams = await team_service.list_teams(self.db, self.org.id)
        self.assertEqual([t.name for t in teams], ["Engineering", "Sales"])


if __name__ == "__main__":
    unittest.main()
