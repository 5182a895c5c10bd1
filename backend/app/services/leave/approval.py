"""Leave request lifecycle: pending -> approved | rejected.

Both end states are terminal. Every transition returns the outbox events it
recorded; callers commit first and then hand those events to
``app.services.outbox.process_events``. Balance accounting and notifications
therefore run after the status change is durable and can fail on their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.leave_request import LeaveRequest
from app.models.leave_type import LeaveType
from app.models.outbox_event import OutboxEvent
from app.models.user import User
from app.services.leave.applicability import is_disabled
from app.services.leave.balances import get_balance
from app.services.leave.overlaps import has_conflict
from app.services.leave.scope import expand_scope, scope_for_profile
from app.services.outbox import BALANCE_APPLY, STATUS_CHANGED, record_event

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = {"approve": "approved", "reject": "rejected"}


@dataclass
class TransitionResult:
    request: LeaveRequest
    events: list[OutboxEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class LeaveRequestInput:
    leave_type_id: UUID
    start_date: date
    end_date: date
    notes: Optional[str] = None
    user_id: Optional[UUID] = None


def days_between(start_date: date, end_date: date) -> float:
    """Calendar days in the inclusive range."""
    return float((end_date - start_date).days + 1)


async def _record_effects(
    db: AsyncSession,
    leave_request: LeaveRequest,
    *,
    enforce: bool = True,
) -> list[OutboxEvent]:
    events = []
    if leave_request.status == "approved":
        events.append(
            await record_event(
                db,
                leave_request.organization_id,
                BALANCE_APPLY,
                {
                    "request_id": str(leave_request.id),
                    "user_id": str(leave_request.user_id),
                    "leave_type_id": str(leave_request.leave_type_id),
                    "days_requested": leave_request.days_requested,
                    "year": leave_request.start_date.year,
                    "enforce": enforce,
                },
            )
        )
    events.append(
        await record_event(
            db,
            leave_request.organization_id,
            STATUS_CHANGED,
            {"request_id": str(leave_request.id), "status": leave_request.status},
        )
    )
    return events


async def review_request(
    db: AsyncSession,
    ctx: RequestContext,
    request_id: UUID,
    action: str,
    comment: Optional[str] = None,
) -> TransitionResult:
    """Approve or reject a pending request."""
    new_status = REVIEW_ACTIONS.get(action)
    if new_status is None:
        raise ValidationError("Invalid action. Must be 'approve' or 'reject'")

    if not ctx.is_manager_or_admin:
        raise ForbiddenError("Only admins and managers can review leave requests")

    leave_request = (
        await db.execute(select(LeaveRequest).where(LeaveRequest.id == request_id))
    ).scalar_one_or_none()
    if leave_request is None:
        raise NotFoundError("Leave request not found")
    if leave_request.organization_id != ctx.organization_id:
        raise ForbiddenError("Leave request belongs to another organization")

    if leave_request.status != "pending":
        raise ConflictError(
            f"Cannot {action} request - status is already {leave_request.status}",
            current_status=leave_request.status,
        )

    if new_status == "approved":
        leave_type = await db.get(LeaveType, leave_request.leave_type_id)
        if leave_type is not None and leave_type.requires_balance:
            balance = await get_balance(
                db,
                ctx.organization_id,
                leave_request.user_id,
                leave_type.id,
                leave_request.start_date.year,
            )
            if balance is not None and leave_request.days_requested > balance.remaining_days:
                raise ValidationError(
                    f"Cannot approve request - insufficient balance "
                    f"({balance.remaining_days:g} day(s) remaining, "
                    f"{leave_request.days_requested:g} requested)"
                )

    # Compare-and-set on status; a concurrent reviewer may have won already
    result = await db.execute(
        update(LeaveRequest)
        .where(
            LeaveRequest.id == request_id,
            LeaveRequest.organization_id == ctx.organization_id,
            LeaveRequest.status == "pending",
        )
        .values(
            status=new_status,
            reviewed_by=ctx.user_id,
            reviewed_at=datetime.now(timezone.utc),
            review_comment=comment,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(leave_request)
    if result.rowcount == 0:
        raise ConflictError(
            f"Cannot {action} request - status is already {leave_request.status}",
            current_status=leave_request.status,
        )

    logger.info(
        "Leave request %s %s by %s", leave_request.id, new_status, ctx.user_id
    )
    events = await _record_effects(db, leave_request)
    return TransitionResult(request=leave_request, events=events)


async def _load_type_for_request(
    db: AsyncSession, organization_id: UUID, leave_type_id: UUID
) -> LeaveType:
    leave_type = (
        await db.execute(
            select(LeaveType).where(
                LeaveType.id == leave_type_id,
                LeaveType.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()
    if leave_type is None:
        raise NotFoundError("Leave type not found")
    return leave_type


def _validate_range(data: LeaveRequestInput) -> float:
    if data.end_date < data.start_date:
        raise ValidationError("End date must not be before start date")
    if data.start_date.year != data.end_date.year:
        raise ValidationError("Leave must not span two calendar years")
    return days_between(data.start_date, data.end_date)


async def create_leave_request(
    db: AsyncSession, ctx: RequestContext, data: LeaveRequestInput
) -> TransitionResult:
    """Submit leave for the caller.

    The request starts pending, or approved straight away for types that do not
    require approval. Either way the type must be selectable for the caller
    and the dates must not collide with their own pending or approved leave.
    """
    days = _validate_range(data)
    leave_type = await _load_type_for_request(db, ctx.organization_id, data.leave_type_id)

    profile = await db.get(User, ctx.user_id)
    balance = await get_balance(
        db, ctx.organization_id, ctx.user_id, leave_type.id, data.start_date.year
    )
    state = is_disabled(leave_type, balance, profile, requested_days=days)
    if state.disabled:
        raise ValidationError(f"Leave type '{leave_type.name}' is not available: {state.reason}")

    if await has_conflict(db, ctx.organization_id, ctx.user_id, data.start_date, data.end_date):
        raise ValidationError("You already have leave booked that overlaps these dates")

    auto_approved = not leave_type.requires_approval
    leave_request = LeaveRequest(
        organization_id=ctx.organization_id,
        user_id=ctx.user_id,
        leave_type_id=leave_type.id,
        start_date=data.start_date,
        end_date=data.end_date,
        days_requested=days,
        status="approved" if auto_approved else "pending",
        notes=data.notes,
        created_by=ctx.user_id,
    )
    if auto_approved:
        leave_request.reviewed_at = datetime.now(timezone.utc)
    db.add(leave_request)
    await db.flush()

    events = await _record_effects(db, leave_request) if auto_approved else []
    return TransitionResult(request=leave_request, events=events)


async def create_absence(
    db: AsyncSession, ctx: RequestContext, data: LeaveRequestInput
) -> TransitionResult:
    """Record an already-approved absence on behalf of an employee.

    Only admins and managers may do this, and only for people they can see.
    An insufficient balance does not block the write; it comes back as a
    warning and the balance is booked without the sufficiency guard.
    """
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("Only admins and managers can create absences")
    if data.user_id is None:
        raise ValidationError("user_id is required")

    days = _validate_range(data)

    actor = await db.get(User, ctx.user_id)
    visible = await expand_scope(db, scope_for_profile(actor))
    if data.user_id not in visible:
        raise ForbiddenError("Employee is outside your scope")

    employee = (
        await db.execute(
            select(User).where(
                User.id == data.user_id,
                User.organization_id == ctx.organization_id,
            )
        )
    ).scalar_one_or_none()
    if employee is None:
        raise NotFoundError("Employee not found")

    leave_type = await _load_type_for_request(db, ctx.organization_id, data.leave_type_id)

    if await has_conflict(
        db, ctx.organization_id, employee.id, data.start_date, data.end_date
    ):
        raise ValidationError("Employee already has leave booked that overlaps these dates")

    warnings = []
    if leave_type.requires_balance:
        balance = await get_balance(
            db, ctx.organization_id, employee.id, leave_type.id, data.start_date.year
        )
        if balance is None:
            warnings.append(
                f"{employee.full_name} has no '{leave_type.name}' balance "
                f"for {data.start_date.year}"
            )
        elif days > balance.remaining_days:
            warnings.append(
                f"{employee.full_name} has {balance.remaining_days:g} day(s) of "
                f"'{leave_type.name}' left; booking {days:g} will overdraw the balance"
            )

    leave_request = LeaveRequest(
        organization_id=ctx.organization_id,
        user_id=employee.id,
        leave_type_id=leave_type.id,
        start_date=data.start_date,
        end_date=data.end_date,
        days_requested=days,
        status="approved",
        notes=data.notes,
        reviewed_by=ctx.user_id,
        reviewed_at=datetime.now(timezone.utc),
        created_by=ctx.user_id,
    )
    db.add(leave_request)
    await db.flush()

    events = await _record_effects(db, leave_request, enforce=False)
    for warning in warnings:
        logger.warning("Absence %s: %s", leave_request.id, warning)
    return TransitionResult(request=leave_request, events=events, warnings=warnings)
