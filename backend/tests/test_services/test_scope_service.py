import unittest
import uuid
from datetime import date

from sqlalchemy import select

from app.core.exceptions import ForbiddenError, NotFoundError
from app.models import LeaveRequest
from app.services.leave.scope import (
    OrganizationScope,
    TeamScope,
    apply_scope,
    can_manage_team,
    ensure_in_scope,
    expand_scope,
    resolve_scope,
)
from tests.support import (
    context_for,
    create_test_database,
    make_leave_type,
    make_org,
    make_request,
    make_team,
    make_user,
)


class ScopeServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, factory = await create_test_database()
        self.db = factory()

        self.org = make_org(self.db, "Org One")
        self.other_org = make_org(self.db, "Org Two")
        await self.db.flush()

        self.admin = make_user(self.db, self.org, "admin@one.com", role="admin")
        self.manager = make_user(self.db, self.org, "manager@one.com", role="manager")
        self.loner = make_user(self.db, self.org, "loner@one.com")
        self.outsider = make_user(self.db, self.other_org, "someone@two.com", role="admin")
        self.orphan = make_user(self.db, None, "orphan@nowhere.com")
        await self.db.flush()

        self.team = make_team(self.db, self.org, "Engineering", manager=self.manager)
        self.other_team = make_team(self.db, self.org, "Sales")
        self.foreign_team = make_team(self.db, self.other_org, "Foreign")
        await self.db.flush()

        self.manager.team_id = self.team.id
        self.dev = make_user(self.db, self.org, "dev@one.com", team=self.team)
        self.seller = make_user(self.db, self.org, "seller@one.com", team=self.other_team)
        # Same team id but a different organization must never leak in
        self.smuggled = make_user(self.db, self.other_org, "smuggled@two.com", team=self.team)
        await self.db.commit()

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    # ---------- resolve_scope ----------

    async def test_admin_gets_organization_scope_even_with_team(self):
        self.admin.team_id = self.team.id
        await self.db.flush()
        scope = await resolve_scope(self.db, self.admin.id)
        self.assertEqual(scope, OrganizationScope(organization_id=self.org.id))
        self.assertEqual(scope.type, "organization")

    async def test_member_with_team_gets_team_scope(self):
        scope = await resolve_scope(self.db, self.manager.id)
        self.assertEqual(scope, TeamScope(organization_id=self.org.id, team_id=self.team.id))
        self.assertEqual(scope.type, "team")

    async def test_member_without_team_falls_back_to_organization(self):
        scope = await resolve_scope(self.db, self.loner.id)
        self.assertIsInstance(scope, OrganizationScope)

    async def test_unknown_user_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await resolve_scope(self.db, uuid.uuid4())

    async def test_user_without_organization_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await resolve_scope(self.db, self.orphan.id)

    # ---------- expand_scope ----------

    async def test_expand_team_scope_is_team_members_of_the_org_only(self):
        ids = await expand_scope(self.db, TeamScope(self.org.id, self.team.id))
        self.assertEqual(ids, {self.manager.id, self.dev.id})
        self.assertNotIn(self.smuggled.id, ids)

    async def test_expand_org_scope_is_every_member(self):
        ids = await expand_scope(self.db, OrganizationScope(self.org.id))
        self.assertEqual(
            ids,
            {self.admin.id, self.manager.id, self.loner.id, self.dev.id, self.seller.id},
        )

    # ---------- apply_scope ----------

    async def test_apply_scope_filters_requests_by_tenant_and_team(self):
        leave_type = make_leave_type(self.db, self.org)
        foreign_type = make_leave_type(self.db, self.other_org)
        await self.db.flush()
        day = date(2026, 5, 4)
        make_request(self.db, self.dev, leave_type, day, day)
        make_request(self.db, self.seller, leave_type, day, day)
        make_request(self.db, self.smuggled, foreign_type, day, day)
        await self.db.flush()

        stmt = apply_scope(
            select(LeaveRequest),
            TeamScope(self.org.id, self.team.id),
            LeaveRequest.user_id,
            LeaveRequest.organization_id,
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        self.assertEqual([r.user_id for r in rows], [self.dev.id])

        stmt = apply_scope(
            select(LeaveRequest),
            OrganizationScope(self.org.id),
            LeaveRequest.user_id,
            LeaveRequest.organization_id,
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        self.assertEqual({r.organization_id for r in rows}, {self.org.id})
        self.assertEqual(len(rows), 2)

    def test_apply_scope_rejects_unknown_variants(self):
        with self.assertRaises(TypeError):
            apply_scope(
                select(LeaveRequest),
                {"type": "team"},
                LeaveRequest.user_id,
                LeaveRequest.organization_id,
            )

    # ---------- can_manage_team ----------

    async def test_recorded_manager_can_manage_team(self):
        self.assertTrue(await can_manage_team(self.db, self.manager.id, self.team.id))

    async def test_other_non_admin_cannot_manage_team(self):
        self.assertFalse(await can_manage_team(self.db, self.dev.id, self.team.id))
        self.assertFalse(await can_manage_team(self.db, self.manager.id, self.other_team.id))

    async def test_admin_manages_only_teams_of_own_organization(self):
        self.assertTrue(await can_manage_team(self.db, self.admin.id, self.other_team.id))
        self.assertFalse(await can_manage_team(self.db, self.admin.id, self.foreign_team.id))

    async def test_missing_team_or_profile_cannot_be_managed(self):
        self.assertFalse(await can_manage_team(self.db, self.manager.id, uuid.uuid4()))
        self.assertFalse(await can_manage_team(self.db, uuid.uuid4(), self.team.id))

    # ---------- ensure_in_scope ----------

    async def test_ensure_in_scope_defaults_to_caller(self):
        ctx = context_for(self.dev)
        self.assertEqual(await ensure_in_scope(self.db, ctx, None), self.dev.id)

    async def test_employee_cannot_look_at_colleague(self):
        with self.assertRaises(ForbiddenError):
            await ensure_in_scope(self.db, context_for(self.dev), self.manager.id)

    async def test_manager_sees_team_but_not_other_teams(self):
        ctx = context_for(self.manager)
        self.assertEqual(await ensure_in_scope(self.db, ctx, self.dev.id), self.dev.id)
        with self.assertRaises(ForbiddenError):
            await ensure_in_scope(self.db, ctx, self.seller.id)


if __name__ == "__main__":
    unittest.main()
