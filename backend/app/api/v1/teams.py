"""Team endpoints, including roster changes."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.dependencies import get_db, get_request_context
from app.core.security import require_role
from app.models.team import Team
from app.schemas.teams import (
    RosterChange,
    RosterChangeResponse,
    TeamCreate,
    TeamDetailResponse,
    TeamMember,
    TeamResponse,
    TeamUpdate,
)
from app.services import teams as team_service

router = APIRouter(prefix="/teams", tags=["teams"])


def _team_response(team: Team, member_count: int) -> TeamResponse:
    resp = TeamResponse.model_validate(team)
    resp.member_count = member_count
    return resp


@router.get("", response_model=list[TeamResponse])
async def list_teams(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    teams = await team_service.list_teams(db, ctx.organization_id)
    counts = await team_service.member_counts(db, ctx.organization_id)
    return [_team_response(t, counts.get(t.id, 0)) for t in teams]


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    body: TeamCreate,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    team = await team_service.create_team(
        db, ctx, body.name, body.description, body.manager_id
    )
    return _team_response(team, 0)


@router.get("/{team_id}", response_model=TeamDetailResponse)
async def get_team(
    team_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    team = await team_service.get_team(db, ctx.organization_id, team_id)
    members = await team_service.list_members(db, ctx.organization_id, team_id)
    return TeamDetailResponse(
        **_team_response(team, len(members)).model_dump(),
        members=[TeamMember.model_validate(m) for m in members],
    )


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: UUID,
    body: TeamUpdate,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    team = await team_service.update_team(db, ctx, team_id, body.model_dump(exclude_unset=True))
    counts = await team_service.member_counts(db, ctx.organization_id)
    return _team_response(team, counts.get(team.id, 0))


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    team_id: UUID,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    await team_service.delete_team(db, ctx, team_id)


# ── Roster ────────────────────────────────────────────────────────────────────


@router.post("/{team_id}/members", response_model=RosterChangeResponse)
async def add_members(
    team_id: UUID,
    body: RosterChange,
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    members = await team_service.add_members(db, ctx, team_id, body.member_ids)
    return RosterChangeResponse(
        message=f"Successfully added {len(members)} member(s) to team",
        count=len(members),
        members=[TeamMember.model_validate(m) for m in members],
    )


@router.delete("/{team_id}/members", response_model=RosterChangeResponse)
async def remove_members(
    team_id: UUID,
    body: RosterChange,
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    members = await team_service.remove_members(db, ctx, team_id, body.member_ids)
    return RosterChangeResponse(
        message=f"Successfully removed {len(members)} member(s) from team",
        count=len(members),
        members=[TeamMember.model_validate(m) for m in members],
    )
