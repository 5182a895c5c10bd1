"""Date-range overlap checks over pending and approved leave requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.leave_request import ACTIVE_STATUSES, LeaveRequest
from app.models.leave_type import LeaveType
from app.models.user import User


@dataclass(frozen=True)
class OverlapEntry:
    user: User
    leave_type: Optional[LeaveType]
    start_date: date
    end_date: date
    status: str


def intervals_overlap(a: date, b: date, c: date, d: date) -> bool:
    """Inclusive intersection of [a, b] and [c, d]."""
    return a <= d and c <= b


def _overlapping(organization_id: UUID, start_date: date, end_date: date):
    return select(LeaveRequest).where(
        LeaveRequest.organization_id == organization_id,
        LeaveRequest.status.in_(ACTIVE_STATUSES),
        LeaveRequest.start_date <= end_date,
        LeaveRequest.end_date >= start_date,
    )


async def find_overlaps(
    db: AsyncSession,
    organization_id: UUID,
    start_date: date,
    end_date: date,
    exclude_user_id: Optional[UUID] = None,
) -> list[OverlapEntry]:
    """Other people's leave intersecting the range. Advisory only."""
    query = _overlapping(organization_id, start_date, end_date).options(
        selectinload(LeaveRequest.user), selectinload(LeaveRequest.leave_type)
    )
    if exclude_user_id is not None:
        query = query.where(LeaveRequest.user_id != exclude_user_id)
    query = query.order_by(LeaveRequest.start_date.asc())

    result = await db.execute(query)
    return [
        OverlapEntry(
            user=r.user,
            leave_type=r.leave_type,
            start_date=r.start_date,
            end_date=r.end_date,
            status=r.status,
        )
        for r in result.scalars().all()
    ]


async def has_conflict(
    db: AsyncSession,
    organization_id: UUID,
    user_id: UUID,
    start_date: date,
    end_date: date,
) -> bool:
    query = (
        _overlapping(organization_id, start_date, end_date)
        .where(LeaveRequest.user_id == user_id)
        .with_only_columns(LeaveRequest.id)
        .limit(1)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none() is not None
