"""Organization settings and notification preference endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas import (
    NotificationSettings,
    NotificationSettingsUpdate,
    OrgResponse,
    UpdateOrgRequest,
)
from app.core.context import RequestContext
from app.core.dependencies import get_db, get_request_context
from app.core.security import require_role
from app.models.user_settings import UserSettings
from app.services.organizations import get_organization, update_organization

router = APIRouter(tags=["organization"])


# ── GET /org ──────────────────────────────────────────────────────────────────


@router.get("/org", response_model=OrgResponse)
async def get_org(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the current user's organization details."""
    return await get_organization(db, ctx.organization_id)


# ── PUT /org ──────────────────────────────────────────────────────────────────


@router.put("/org", response_model=OrgResponse)
async def update_org(
    body: UpdateOrgRequest,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Update organization settings (admin only)."""
    return await update_organization(db, ctx, body.model_dump(exclude_unset=True))


# ── GET/PUT /me/settings ─────────────────────────────────────────────────────


@router.get("/me/settings", response_model=NotificationSettings)
async def get_my_settings(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == ctx.user_id))
    row = result.scalar_one_or_none()
    if row is None:
        return NotificationSettings()
    return row


@router.put("/me/settings", response_model=NotificationSettings)
async def update_my_settings(
    body: NotificationSettingsUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Merge the provided switches into the caller's preferences."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == ctx.user_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = UserSettings(user_id=ctx.user_id, **NotificationSettings().model_dump())
        db.add(row)

    for key, value in body.model_dump(exclude_none=True).items():
        setattr(row, key, value)
    await db.flush()
    return row
