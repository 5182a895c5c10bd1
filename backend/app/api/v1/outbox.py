"""Reconciliation view over side effects that did not complete."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.dependencies import get_db
from app.core.security import require_role
from app.schemas.outbox import OutboxEventResponse
from app.services.outbox import list_events, retry_event

router = APIRouter(prefix="/outbox", tags=["outbox"])


@router.get("", response_model=list[OutboxEventResponse])
async def get_outbox_events(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    return await list_events(db, ctx.organization_id, status_filter, limit)


@router.post("/{event_id}/retry", response_model=OutboxEventResponse)
async def retry_outbox_event(
    event_id: UUID,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Re-run a failed event once, e.g. after fixing a missing balance."""
    return await retry_event(db, ctx.organization_id, event_id)
