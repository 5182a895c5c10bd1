"""Membership and visibility scope.

A viewer sees either the whole organization or only their team. Admins always
get the organization; non-admins with a team get the team; non-admins without
a team fall back to the organization. That fallback is deliberately broad.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.exceptions import ForbiddenError, NotFoundError
from app.models.team import Team
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationScope:
    organization_id: UUID

    @property
    def type(self) -> str:
        return "organization"


@dataclass(frozen=True)
class TeamScope:
    organization_id: UUID
    team_id: UUID

    @property
    def type(self) -> str:
        return "team"


Scope = Union[OrganizationScope, TeamScope]


def scope_for_profile(profile: User) -> Scope:
    """Pure scope decision for an already-loaded profile."""
    if profile.organization_id is None:
        raise NotFoundError("User profile not found")
    if profile.role == "admin":
        return OrganizationScope(organization_id=profile.organization_id)
    if profile.team_id is not None:
        return TeamScope(organization_id=profile.organization_id, team_id=profile.team_id)
    return OrganizationScope(organization_id=profile.organization_id)


async def resolve_scope(db: AsyncSession, user_id: UUID) -> Scope:
    result = await db.execute(select(User).where(User.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("User profile not found")
    return scope_for_profile(profile)


def apply_scope(stmt: Select, scope: Scope, user_column, organization_column) -> Select:
    """Restrict ``stmt`` to rows visible under ``scope``.

    ``user_column`` is the column holding the owning user id and
    ``organization_column`` the tenant column of the queried table. The tenant
    filter is applied for both variants.
    """
    if isinstance(scope, OrganizationScope):
        return stmt.where(organization_column == scope.organization_id)
    if isinstance(scope, TeamScope):
        team_members = (
            select(User.id)
            .where(
                User.team_id == scope.team_id,
                User.organization_id == scope.organization_id,
            )
            .correlate(None)
        )
        return stmt.where(
            organization_column == scope.organization_id,
            user_column.in_(team_members),
        )
    raise TypeError(f"Unsupported scope: {scope!r}")


async def expand_scope(db: AsyncSession, scope: Scope) -> set[UUID]:
    stmt = apply_scope(select(User.id), scope, User.id, User.organization_id)
    result = await db.execute(stmt)
    return set(result.scalars().all())


async def can_manage_team(db: AsyncSession, user_id: UUID, team_id: UUID) -> bool:
    profile = (
        await db.execute(select(User).where(User.id == user_id))
    ).scalar_one_or_none()
    if profile is None:
        return False

    team = (await db.execute(select(Team).where(Team.id == team_id))).scalar_one_or_none()
    if team is None:
        return False

    # Admins manage any team of their own organization only
    if profile.role == "admin":
        return team.organization_id == profile.organization_id

    return team.manager_id == user_id


async def ensure_in_scope(db: AsyncSession, ctx: RequestContext, user_id: UUID | None) -> UUID:
    """Return ``user_id`` if the caller may see it, defaulting to the caller."""
    if user_id is None or user_id == ctx.user_id:
        return ctx.user_id
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("You can only view your own data")
    visible = await expand_scope(db, await resolve_scope(db, ctx.user_id))
    if user_id not in visible:
        logger.info("User %s denied access to %s: outside scope", ctx.user_id, user_id)
        raise ForbiddenError("User is outside your scope")
    return user_id
