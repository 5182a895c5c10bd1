"""Leave type configuration and the per-user type picker."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.dependencies import get_db, get_request_context
from app.core.exceptions import NotFoundError, ValidationError
from app.core.security import require_role
from app.models.leave_type import LeaveType
from app.models.user import User
from app.schemas.leave import (
    LeaveBalanceResponse,
    LeaveTypeCreate,
    LeaveTypeOptionResponse,
    LeaveTypeResponse,
)
from app.services.leave.applicability import leave_type_options
from app.services.leave.balances import get_user_balances
from app.services.leave.scope import ensure_in_scope

router = APIRouter(prefix="/leave-types", tags=["leave-types"])


async def _org_types(db: AsyncSession, organization_id: UUID) -> list[LeaveType]:
    result = await db.execute(
        select(LeaveType).where(LeaveType.organization_id == organization_id)
    )
    return list(result.scalars().all())


@router.get("", response_model=list[LeaveTypeResponse])
async def list_leave_types(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    types = await _org_types(db, ctx.organization_id)
    return sorted(types, key=lambda t: t.name.lower())


@router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    body: LeaveTypeCreate,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(
        select(LeaveType.id).where(
            LeaveType.organization_id == ctx.organization_id,
            LeaveType.name == body.name,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ValidationError(f"Leave type '{body.name}' already exists")

    leave_type = LeaveType(organization_id=ctx.organization_id, **body.model_dump())
    db.add(leave_type)
    await db.flush()
    return leave_type


@router.get("/options", response_model=list[LeaveTypeOptionResponse])
async def get_leave_type_options(
    user_id: Optional[UUID] = None,
    requested_days: Optional[float] = Query(None, gt=0),
    year: Optional[int] = None,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Every leave type with whether the user can pick it, and why not."""
    target_id = await ensure_in_scope(db, ctx, user_id)
    profile = (
        await db.execute(
            select(User).where(User.id == target_id, User.organization_id == ctx.organization_id)
        )
    ).scalar_one_or_none()
    if profile is None:
        raise NotFoundError("User not found")

    year = year or date.today().year
    types = await _org_types(db, ctx.organization_id)
    balances = await get_user_balances(db, ctx.organization_id, target_id, year)
    options = leave_type_options(
        profile, types, balances, ctx.organization_id, requested_days, year
    )
    return [
        LeaveTypeOptionResponse(
            leave_type=LeaveTypeResponse.model_validate(o.leave_type),
            balance=LeaveBalanceResponse.model_validate(o.balance) if o.balance else None,
            disabled=o.disabled,
            reason=o.reason,
        )
        for o in options
    ]
