"""Leave balance accounting.

``used_days`` is the only mutable counter; ``remaining_days`` is always derived
from it. The increment is a single conditional UPDATE, so two approvals racing
for the last days of a balance cannot both succeed on the enforced path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BalanceAccountingError,
    InsufficientBalanceError,
    NotFoundError,
)
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.models.user import User
from app.services.leave.applicability import MANUAL_ASSIGNMENT_CATEGORIES

logger = logging.getLogger(__name__)


@dataclass
class BalanceResult:
    applied: bool
    balance: Optional[LeaveBalance] = None
    warning: Optional[str] = None


async def get_balance(
    db: AsyncSession,
    organization_id: UUID,
    user_id: UUID,
    leave_type_id: UUID,
    year: int,
) -> Optional[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance).where(
            LeaveBalance.organization_id == organization_id,
            LeaveBalance.user_id == user_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
    )
    return result.scalar_one_or_none()


async def get_user_balances(
    db: AsyncSession,
    organization_id: UUID,
    user_id: UUID,
    year: Optional[int] = None,
) -> list[LeaveBalance]:
    query = select(LeaveBalance).where(
        LeaveBalance.organization_id == organization_id,
        LeaveBalance.user_id == user_id,
    )
    if year is not None:
        query = query.where(LeaveBalance.year == year)
    result = await db.execute(query.order_by(LeaveBalance.year.desc()))
    return list(result.scalars().all())


async def apply_approval(
    db: AsyncSession,
    user_id: UUID,
    leave_type_id: UUID,
    days_requested: float,
    organization_id: UUID,
    *,
    enforce: bool = True,
    year: Optional[int] = None,
) -> BalanceResult:
    """Book ``days_requested`` against the user's balance for the year.

    With ``enforce`` a write that would take a tracked balance below zero is
    refused with ``InsufficientBalanceError``. Without it (auto-approved
    absences) the write always lands and a warning is returned instead.
    """
    year = year or date.today().year

    leave_type = (
        await db.execute(
            select(LeaveType).where(
                LeaveType.id == leave_type_id,
                LeaveType.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()
    if leave_type is None:
        raise BalanceAccountingError(f"leave type {leave_type_id} not found")

    balance = await get_balance(db, organization_id, user_id, leave_type_id, year)
    if balance is None:
        if not leave_type.requires_balance:
            return BalanceResult(applied=False)
        raise BalanceAccountingError(
            f"no balance record for user {user_id}, leave type {leave_type_id}, year {year}"
        )

    stmt = (
        update(LeaveBalance)
        .where(LeaveBalance.id == balance.id)
        .values(used_days=LeaveBalance.used_days + days_requested)
        .execution_options(synchronize_session=False)
    )
    if enforce and leave_type.requires_balance:
        stmt = stmt.where(
            LeaveBalance.used_days + days_requested <= LeaveBalance.entitled_days
        )

    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.refresh(balance)
        raise InsufficientBalanceError(balance.remaining_days, days_requested)

    await db.refresh(balance)

    warning = None
    if leave_type.requires_balance and balance.remaining_days < 0:
        warning = (
            f"Balance for '{leave_type.name}' is now {balance.remaining_days:g} day(s)"
        )
        logger.warning(
            "Balance overdrawn for user=%s leave_type=%s year=%s remaining=%s",
            user_id,
            leave_type_id,
            year,
            balance.remaining_days,
        )

    logger.info(
        "Booked %s day(s) for user=%s leave_type=%s year=%s (used=%s)",
        days_requested,
        user_id,
        leave_type_id,
        year,
        balance.used_days,
    )
    return BalanceResult(applied=True, balance=balance, warning=warning)


async def seed_default_balances(
    db: AsyncSession, user: User, year: Optional[int] = None
) -> list[LeaveBalance]:
    """Create the yearly balances a new member starts with.

    Only tracked types with a yearly allowance are seeded; parental categories
    are left for an admin to assign by hand.
    """
    year = year or date.today().year

    result = await db.execute(
        select(LeaveType).where(
            LeaveType.organization_id == user.organization_id,
            LeaveType.requires_balance.is_(True),
            LeaveType.days_per_year > 0,
            LeaveType.leave_category.not_in(sorted(MANUAL_ASSIGNMENT_CATEGORIES)),
        )
    )
    types = list(result.scalars().all())

    existing = await db.execute(
        select(LeaveBalance.leave_type_id).where(
            LeaveBalance.user_id == user.id, LeaveBalance.year == year
        )
    )
    already = set(existing.scalars().all())

    created = []
    for leave_type in types:
        if leave_type.id in already:
            continue
        balance = LeaveBalance(
            organization_id=user.organization_id,
            user_id=user.id,
            leave_type_id=leave_type.id,
            year=year,
            entitled_days=leave_type.days_per_year,
            used_days=0,
        )
        db.add(balance)
        created.append(balance)
    await db.flush()
    return created


async def set_balance(
    db: AsyncSession,
    organization_id: UUID,
    user_id: UUID,
    leave_type_id: UUID,
    year: int,
    entitled_days: float,
    used_days: Optional[float] = None,
) -> LeaveBalance:
    """Create or adjust a balance row by hand (admin only)."""
    user = (
        await db.execute(
            select(User).where(User.id == user_id, User.organization_id == organization_id)
        )
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

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

    balance = await get_balance(db, organization_id, user_id, leave_type_id, year)
    if balance is None:
        balance = LeaveBalance(
            organization_id=organization_id,
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            entitled_days=entitled_days,
            used_days=used_days or 0,
        )
        db.add(balance)
    else:
        balance.entitled_days = entitled_days
        if used_days is not None:
            balance.used_days = used_days

    await db.flush()
    await db.refresh(balance)
    return balance
