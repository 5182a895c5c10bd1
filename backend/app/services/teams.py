"""Team CRUD and roster changes."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.team import Team
from app.models.user import User
from app.services.leave.scope import can_manage_team

logger = logging.getLogger(__name__)


async def _get_team(db: AsyncSession, organization_id: UUID, team_id: UUID) -> Team:
    result = await db.execute(
        select(Team).where(Team.id == team_id, Team.organization_id == organization_id)
    )
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def _check_manager(db: AsyncSession, organization_id: UUID, manager_id: Optional[UUID]) -> None:
    if manager_id is None:
        return
    result = await db.execute(
        select(User.id).where(User.id == manager_id, User.organization_id == organization_id)
    )
    if result.scalar_one_or_none() is None:
        raise ValidationError("Manager must be a member of the organization")


async def member_counts(db: AsyncSession, organization_id: UUID) -> dict[UUID, int]:
    result = await db.execute(
        select(User.team_id, func.count(User.id))
        .where(User.organization_id == organization_id, User.team_id.is_not(None))
        .group_by(User.team_id)
    )
    return {team_id: count for team_id, count in result.all()}


async def list_teams(db: AsyncSession, organization_id: UUID) -> list[Team]:
    result = await db.execute(
        select(Team).where(Team.organization_id == organization_id).order_by(Team.name)
    )
    return list(result.scalars().all())


async def get_team(db: AsyncSession, organization_id: UUID, team_id: UUID) -> Team:
    return await _get_team(db, organization_id, team_id)


async def list_members(db: AsyncSession, organization_id: UUID, team_id: UUID) -> list[User]:
    result = await db.execute(
        select(User)
        .where(User.team_id == team_id, User.organization_id == organization_id)
        .order_by(User.full_name)
    )
    return list(result.scalars().all())


async def create_team(
    db: AsyncSession,
    ctx: RequestContext,
    name: str,
    description: Optional[str] = None,
    manager_id: Optional[UUID] = None,
) -> Team:
    if not ctx.is_admin:
        raise ForbiddenError("Only admins can create teams")
    await _check_manager(db, ctx.organization_id, manager_id)

    team = Team(
        organization_id=ctx.organization_id,
        name=name,
        description=description,
        manager_id=manager_id,
    )
    db.add(team)
    await db.flush()
    logger.info("Team %s created in org %s", team.id, ctx.organization_id)
    return team


async def update_team(
    db: AsyncSession, ctx: RequestContext, team_id: UUID, changes: dict
) -> Team:
    if not ctx.is_admin:
        raise ForbiddenError("Only admins can edit teams")
    team = await _get_team(db, ctx.organization_id, team_id)
    if "manager_id" in changes:
        await _check_manager(db, ctx.organization_id, changes["manager_id"])
    for field_name in ("name", "description", "manager_id"):
        if field_name in changes:
            setattr(team, field_name, changes[field_name])
    await db.flush()
    return team


async def delete_team(db: AsyncSession, ctx: RequestContext, team_id: UUID) -> None:
    if not ctx.is_admin:
        raise ForbiddenError("Only admins can delete teams")
    team = await _get_team(db, ctx.organization_id, team_id)
    await db.execute(
        update(User)
        .where(User.team_id == team.id, User.organization_id == ctx.organization_id)
        .values(team_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(team)
    await db.flush()


async def _authorize_roster_change(db: AsyncSession, ctx: RequestContext, team_id: UUID) -> Team:
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("You do not have permission to manage team members")
    team = await _get_team(db, ctx.organization_id, team_id)
    if not await can_manage_team(db, ctx.user_id, team.id):
        raise ForbiddenError("You do not have permission to manage this team")
    return team


async def add_members(
    db: AsyncSession, ctx: RequestContext, team_id: UUID, member_ids: list[UUID]
) -> list[User]:
    """Move the given organization members into the team. Returns who moved."""
    if not member_ids:
        raise ValidationError("member_ids must be a non-empty array")
    team = await _authorize_roster_change(db, ctx, team_id)

    result = await db.execute(
        select(User).where(
            User.id.in_(member_ids),
            User.organization_id == ctx.organization_id,
            User.is_active.is_(True),
        )
    )
    members = list(result.scalars().all())
    for member in members:
        member.team_id = team.id
    await db.flush()
    logger.info("Added %d member(s) to team %s", len(members), team.id)
    return members


async def remove_members(
    db: AsyncSession, ctx: RequestContext, team_id: UUID, member_ids: list[UUID]
) -> list[User]:
    """Clear the team of the given members. Members of other teams are untouched."""
    if not member_ids:
        raise ValidationError("member_ids must be a non-empty array")
    team = await _authorize_roster_change(db, ctx, team_id)

    result = await db.execute(
        select(User).where(
            User.id.in_(member_ids),
            User.organization_id == ctx.organization_id,
            User.team_id == team.id,
        )
    )
    members = list(result.scalars().all())
    for member in members:
        member.team_id = None
    await db.flush()
    logger.info("Removed %d member(s) from team %s", len(members), team.id)
    return members
