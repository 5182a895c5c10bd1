"""Invitation endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas import (
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationResponse,
)
from app.core.config import settings
from app.core.context import RequestContext
from app.core.dependencies import get_db
from app.core.security import require_role
from app.services.invitations import create_invitation, list_invitations, revoke_invitation
from app.services.outbox import process_events

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.post("", response_model=InvitationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def invite(
    body: InvitationCreate,
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    """Invite someone by email. The link is returned even when the email fails."""
    invitation, events = await create_invitation(
        db, ctx, body.email, body.role, body.personal_message
    )
    response = InvitationCreatedResponse(
        **InvitationResponse.model_validate(invitation).model_dump(),
        invite_url=f"{settings.APP_URL.rstrip('/')}/team/invite?token={invitation.token}",
    )
    await db.commit()

    await process_events(db, events)
    return response


@router.get("", response_model=list[InvitationResponse])
async def get_invitations(
    status_filter: Optional[str] = Query(None, alias="status"),
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    return await list_invitations(db, ctx, status_filter)


@router.post("/{invitation_id}/revoke", response_model=InvitationResponse)
async def revoke(
    invitation_id: UUID,
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    return await revoke_invitation(db, ctx, invitation_id)
