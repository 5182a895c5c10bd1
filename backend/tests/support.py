"""Shared fixtures for the service tests: in-memory database and row builders."""

import uuid
from datetime import date

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every mapper on Base.metadata)
from app.core.context import RequestContext
from app.core.database import Base
from app.models import LeaveBalance, LeaveRequest, LeaveType, Organization, Team, User


async def create_test_database():
    """Fresh in-memory SQLite database. Returns (engine, session_factory)."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    return engine, factory


def make_org(db, name="Org One", slug=None, **kwargs):
    org = Organization(name=name, slug=slug or f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}", **kwargs)
    db.add(org)
    return org


def make_user(db, org, email, role="employee", team=None, **kwargs):
    user = User(
        organization_id=org.id if org else None,
        team_id=team.id if team else None,
        email=email,
        hashed_password="not-a-real-hash",
        full_name=kwargs.pop("full_name", email.split("@")[0].title()),
        role=role,
        **kwargs,
    )
    db.add(user)
    return user


def make_team(db, org, name="Team", manager=None):
    team = Team(organization_id=org.id, name=name, manager_id=manager.id if manager else None)
    db.add(team)
    return team


def make_leave_type(db, org, name="Annual", **kwargs):
    values = {
        "days_per_year": 20,
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "vacation",
    }
    values.update(kwargs)
    leave_type = LeaveType(organization_id=org.id, name=name, **values)
    db.add(leave_type)
    return leave_type


def make_balance(db, user, leave_type, entitled=20, used=0, year=None):
    balance = LeaveBalance(
        organization_id=user.organization_id,
        user_id=user.id,
        leave_type_id=leave_type.id,
        year=year or date.today().year,
        entitled_days=entitled,
        used_days=used,
    )
    db.add(balance)
    return balance


def make_request(db, user, leave_type, start, end, status="pending", **kwargs):
    request = LeaveRequest(
        organization_id=user.organization_id,
        user_id=user.id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        days_requested=kwargs.pop("days_requested", float((end - start).days + 1)),
        status=status,
        created_by=user.id,
        **kwargs,
    )
    db.add(request)
    return request


def context_for(user):
    return RequestContext.from_user(user)
