"""Periodic digests: pending-request reminders and the weekly leave summary.

Triggered from outside (cron hitting the jobs endpoints). Each recipient only
sees requests inside their own visibility scope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.context import MANAGER_ROLES
from app.models.leave_request import LeaveRequest
from app.models.organization import Organization
from app.models.user import User
from app.services.leave.scope import apply_scope, scope_for_profile
from app.services.notifications.dispatcher import PREFERENCE_DISABLED, notify

logger = logging.getLogger(__name__)


@dataclass
class DigestReport:
    sent: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, success: bool, reason: Optional[str]) -> None:
        if success:
            self.sent += 1
        elif reason == PREFERENCE_DISABLED:
            self.skipped += 1
        else:
            self.failed += 1


def _request_summary(r: LeaveRequest) -> dict:
    return {
        "employee_name": r.user.full_name if r.user else "",
        "leave_type": r.leave_type.name if r.leave_type else "",
        "start_date": r.start_date.isoformat(),
        "end_date": r.end_date.isoformat(),
        "request_date": r.created_at.date().isoformat() if r.created_at else None,
    }


async def _visible_requests(db: AsyncSession, viewer: User, *conditions) -> list[LeaveRequest]:
    query = apply_scope(
        select(LeaveRequest).options(
            selectinload(LeaveRequest.user), selectinload(LeaveRequest.leave_type)
        ),
        scope_for_profile(viewer),
        LeaveRequest.user_id,
        LeaveRequest.organization_id,
    )
    result = await db.execute(query.where(*conditions).order_by(LeaveRequest.start_date))
    return list(result.scalars().all())


async def _organizations(db: AsyncSession) -> list[Organization]:
    result = await db.execute(select(Organization).order_by(Organization.created_at))
    return list(result.scalars().all())


async def _members(db: AsyncSession, organization_id, roles=None) -> list[User]:
    query = select(User).where(
        User.organization_id == organization_id, User.is_active.is_(True)
    )
    if roles:
        query = query.where(User.role.in_(roles))
    result = await db.execute(query)
    return list(result.scalars().all())


async def send_pending_reminders(db: AsyncSession) -> DigestReport:
    """Remind admins and managers about requests still waiting for review."""
    report = DigestReport()
    for org in await _organizations(db):
        for reviewer in await _members(db, org.id, MANAGER_ROLES):
            pending = await _visible_requests(
                db,
                reviewer,
                LeaveRequest.status == "pending",
                LeaveRequest.user_id != reviewer.id,
            )
            if not pending:
                continue
            result = await notify(
                db,
                "leave_reminder",
                {
                    "to": reviewer.email,
                    "user_id": str(reviewer.id),
                    "organization_name": org.name,
                    "pending_count": len(pending),
                    "requests": [_request_summary(r) for r in pending],
                },
            )
            report.record(result.success, result.reason)

    logger.info(
        "Pending reminders: sent=%d skipped=%d failed=%d",
        report.sent,
        report.skipped,
        report.failed,
    )
    return report


def week_bounds(today: date) -> tuple[date, date]:
    start = today - timedelta(days=today.weekday())
    return start, start + timedelta(days=6)


async def send_weekly_summaries(db: AsyncSession, today: Optional[date] = None) -> DigestReport:
    """Tell every member who is away this week within their scope."""
    week_start, week_end = week_bounds(today or date.today())
    report = DigestReport()
    for org in await _organizations(db):
        for member in await _members(db, org.id):
            upcoming = await _visible_requests(
                db,
                member,
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= week_end,
                LeaveRequest.end_date >= week_start,
            )
            pending_count = 0
            if member.role in MANAGER_ROLES:
                pending_count = len(
                    await _visible_requests(db, member, LeaveRequest.status == "pending")
                )
            result = await notify(
                db,
                "weekly_summary",
                {
                    "to": member.email,
                    "user_id": str(member.id),
                    "organization_name": org.name,
                    "week_start": week_start.isoformat(),
                    "week_end": week_end.isoformat(),
                    "total_leaves": len(upcoming),
                    "pending_requests": pending_count,
                    "upcoming_leaves": [_request_summary(r) for r in upcoming],
                },
            )
            report.record(result.success, result.reason)

    logger.info(
        "Weekly summaries %s: sent=%d skipped=%d failed=%d",
        week_start,
        report.sent,
        report.skipped,
        report.failed,
    )
    return report
