from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.dependencies import get_db, get_request_context
from app.core.exceptions import ValidationError
from app.core.security import require_role
from app.models.leave_request import LeaveRequest
from app.schemas.leave import (
    AbsenceCreate,
    ApprovalRequest,
    ApprovalResponse,
    LeaveBalanceResponse,
    LeaveBalanceUpdate,
    LeaveRequestCreate,
    LeaveRequestCreatedResponse,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    OverlapResponse,
)
from app.services.leave.approval import (
    LeaveRequestInput,
    TransitionResult,
    create_absence,
    create_leave_request,
    review_request,
)
from app.services.leave.balances import get_user_balances, set_balance
from app.services.leave.overlaps import find_overlaps
from app.services.leave.scope import apply_scope, ensure_in_scope, resolve_scope
from app.services.outbox import process_events

router = APIRouter(prefix="/leave", tags=["leave"])


async def _commit_and_dispatch(
    db: AsyncSession, result: TransitionResult
) -> LeaveRequestCreatedResponse:
    """Commit the transition, then run its side effects."""
    response = LeaveRequestCreatedResponse(
        request=LeaveRequestResponse.model_validate(result.request),
        warnings=list(result.warnings),
    )
    await db.commit()
    await process_events(db, result.events)
    return response


# ── Balances ──────────────────────────────────────────────────────────────────


@router.get("/balances", response_model=list[LeaveBalanceResponse])
async def get_leave_balances(
    user_id: Optional[UUID] = None,
    year: Optional[int] = None,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Own balances, or those of someone in the caller's scope."""
    target_id = await ensure_in_scope(db, ctx, user_id)
    return await get_user_balances(db, ctx.organization_id, target_id, year)


@router.put("/balances", response_model=LeaveBalanceResponse)
async def put_leave_balance(
    body: LeaveBalanceUpdate,
    ctx: RequestContext = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Assign or adjust a balance by hand (admin only)."""
    return await set_balance(
        db,
        ctx.organization_id,
        body.user_id,
        body.leave_type_id,
        body.year,
        body.entitled_days,
        body.used_days,
    )


# ── Requests ──────────────────────────────────────────────────────────────────


@router.post(
    "/requests",
    response_model=LeaveRequestCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_leave_request(
    data: LeaveRequestCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Submit a new leave request for yourself."""
    result = await create_leave_request(
        db,
        ctx,
        LeaveRequestInput(
            leave_type_id=data.leave_type_id,
            start_date=data.start_date,
            end_date=data.end_date,
            notes=data.notes,
        ),
    )
    return await _commit_and_dispatch(db, result)


@router.post(
    "/absences",
    response_model=LeaveRequestCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_absence(
    data: AbsenceCreate,
    ctx: RequestContext = Depends(require_role("admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    """Record an approved absence for an employee; balance warnings do not block it."""
    result = await create_absence(
        db,
        ctx,
        LeaveRequestInput(
            leave_type_id=data.leave_type_id,
            start_date=data.start_date,
            end_date=data.end_date,
            notes=data.notes,
            user_id=data.user_id,
        ),
    )
    return await _commit_and_dispatch(db, result)


@router.get("/requests", response_model=LeaveRequestListResponse)
async def list_leave_requests(
    user_id: Optional[UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests. Managers and admins see their scope; employees their own."""
    query = select(LeaveRequest)
    if ctx.is_manager_or_admin:
        scope = await resolve_scope(db, ctx.user_id)
        query = apply_scope(query, scope, LeaveRequest.user_id, LeaveRequest.organization_id)
        if user_id:
            query = query.where(LeaveRequest.user_id == user_id)
    else:
        query = query.where(
            LeaveRequest.organization_id == ctx.organization_id,
            LeaveRequest.user_id == ctx.user_id,
        )

    if status_filter:
        query = query.where(LeaveRequest.status == status_filter)
    if start_date:
        query = query.where(LeaveRequest.end_date >= start_date)
    if end_date:
        query = query.where(LeaveRequest.start_date <= end_date)

    result = await db.execute(query.order_by(LeaveRequest.start_date.desc()))
    requests = result.scalars().all()
    return LeaveRequestListResponse(items=requests, total=len(requests))


@router.get("/overlaps", response_model=list[OverlapResponse])
async def get_overlaps(
    start_date: date,
    end_date: date,
    exclude_user_id: Optional[UUID] = None,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Who else is away in the range. Advisory only."""
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")
    entries = await find_overlaps(
        db, ctx.organization_id, start_date, end_date, exclude_user_id or ctx.user_id
    )
    return [
        OverlapResponse(
            user_id=e.user.id,
            full_name=e.user.full_name,
            leave_type=e.leave_type.name if e.leave_type else None,
            color=e.leave_type.color if e.leave_type else None,
            start_date=e.start_date,
            end_date=e.end_date,
            status=e.status,
        )
        for e in entries
    ]


@router.post("/requests/{request_id}/approve", response_model=ApprovalResponse)
async def approve_leave_request(
    request_id: UUID,
    body: ApprovalRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending request (admin/manager)."""
    result = await review_request(db, ctx, request_id, body.action, body.comment)
    new_status = result.request.status
    await db.commit()
    await process_events(db, result.events)
    return ApprovalResponse(
        success=True,
        message=f"Leave request {new_status} successfully",
        status=new_status,
    )
