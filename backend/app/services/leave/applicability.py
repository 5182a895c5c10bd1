"""Which leave types an employee may pick, and why the others are disabled.

Everything here is a pure function over already-loaded rows so the same rules
back both the request validation and the type picker shown to managers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from uuid import UUID

from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.models.user import User

NO_BALANCE_REASON = "no balance record"
EXHAUSTED_REASON = "balance exhausted"

# Categories never seeded automatically; balances are assigned by an admin.
MANUAL_ASSIGNMENT_CATEGORIES = frozenset({"maternity", "paternity", "childcare"})


@dataclass(frozen=True)
class DisabledState:
    disabled: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class LeaveTypeOption:
    leave_type: LeaveType
    balance: Optional[LeaveBalance]
    disabled: bool
    reason: Optional[str] = None


def _maternity(profile: User) -> Optional[str]:
    if profile.gender is not None and profile.gender != "female":
        return "maternity leave is available to female employees only"
    return None


def _paternity(profile: User) -> Optional[str]:
    if profile.gender is not None and profile.gender != "male":
        return "paternity leave is available to male employees only"
    return None


def _childcare(profile: User) -> Optional[str]:
    if not profile.children_count:
        return "childcare leave requires at least one registered child"
    return None


CATEGORY_RULES: dict[str, Callable[[User], Optional[str]]] = {
    "maternity": _maternity,
    "paternity": _paternity,
    "childcare": _childcare,
}


ENABLED = DisabledState(disabled=False)


def is_disabled(
    leave_type: LeaveType,
    balance: Optional[LeaveBalance],
    profile: Optional[User] = None,
    requested_days: Optional[float] = None,
) -> DisabledState:
    """First matching rule wins: missing balance, exhausted balance, category."""
    if leave_type.requires_balance:
        if balance is None:
            return DisabledState(disabled=True, reason=NO_BALANCE_REASON)
        remaining = balance.remaining_days
        if remaining <= 0:
            return DisabledState(disabled=True, reason=EXHAUSTED_REASON)
        if requested_days is not None and requested_days > remaining:
            return DisabledState(disabled=True, reason=EXHAUSTED_REASON)

    if profile is not None:
        rule = CATEGORY_RULES.get(leave_type.leave_category)
        if rule is not None:
            reason = rule(profile)
            if reason:
                return DisabledState(disabled=True, reason=reason)

    return ENABLED


def _balances_by_type(
    balances: Iterable[LeaveBalance], user_id: UUID, year: Optional[int]
) -> dict[UUID, LeaveBalance]:
    by_type: dict[UUID, LeaveBalance] = {}
    for b in balances:
        if b.user_id != user_id:
            continue
        if year is not None and b.year != year:
            continue
        by_type[b.leave_type_id] = b
    return by_type


def leave_type_options(
    profile: User,
    all_types: Iterable[LeaveType],
    balances: Iterable[LeaveBalance],
    organization_id: UUID,
    requested_days: Optional[float] = None,
    year: Optional[int] = None,
) -> list[LeaveTypeOption]:
    """Every type of the organization, ordered by name, with its disabled state."""
    by_type = _balances_by_type(balances, profile.id, year)
    options = []
    org_types = [t for t in all_types if t.organization_id == organization_id]
    for leave_type in sorted(org_types, key=lambda t: (t.name.lower(), str(t.id))):
        balance = by_type.get(leave_type.id)
        state = is_disabled(leave_type, balance, profile, requested_days)
        options.append(
            LeaveTypeOption(
                leave_type=leave_type,
                balance=balance,
                disabled=state.disabled,
                reason=state.reason,
            )
        )
    return options


def applicable_types(
    profile: User,
    all_types: Iterable[LeaveType],
    balances: Iterable[LeaveBalance],
    organization_id: UUID,
    *,
    include_disabled: bool = False,
    requested_days: Optional[float] = None,
    year: Optional[int] = None,
) -> list[LeaveType]:
    options = leave_type_options(
        profile, all_types, balances, organization_id, requested_days, year
    )
    return [o.leave_type for o in options if include_disabled or not o.disabled]
