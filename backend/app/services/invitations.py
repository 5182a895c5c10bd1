"""Invitations: issue, list, revoke and accept."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.context import RequestContext
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.core.security import hash_password
from app.models.invitation import Invitation
from app.models.organization import Organization
from app.models.outbox_event import OutboxEvent
from app.models.user import User
from app.services.leave.balances import seed_default_balances
from app.services.outbox import INVITATION_CREATED, record_event

logger = logging.getLogger(__name__)

ALREADY_PENDING = "There is already a pending invitation for this email"


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return _aware(invitation.expires_at) <= now


def generate_token() -> str:
    return secrets.token_urlsafe(32)


async def create_invitation(
    db: AsyncSession,
    ctx: RequestContext,
    email: str,
    role: str = "employee",
    personal_message: Optional[str] = None,
) -> tuple[Invitation, list[OutboxEvent]]:
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("Only admins and managers can invite people")
    if role != "employee" and not ctx.is_admin:
        raise ForbiddenError("Only admins can invite managers or admins")

    email = email.strip().lower()
    org = await db.get(Organization, ctx.organization_id)
    if org.require_google_domain and org.google_domain:
        if email.rsplit("@", 1)[-1] != org.google_domain.lower():
            raise ValidationError(f"Email must belong to the {org.google_domain} domain")

    member = (
        await db.execute(select(User).where(User.email == email))
    ).scalar_one_or_none()
    if member is not None:
        if member.organization_id == ctx.organization_id:
            raise ValidationError("This person is already a member of the organization")
        raise ValidationError("Email already registered")

    pending = (
        await db.execute(
            select(Invitation).where(
                Invitation.email == email,
                Invitation.organization_id == ctx.organization_id,
                Invitation.status == "pending",
            )
        )
    ).scalar_one_or_none()
    if pending is not None:
        if not is_expired(pending):
            raise ValidationError(ALREADY_PENDING)
        pending.status = "expired"
        await db.flush()

    invitation = Invitation(
        organization_id=ctx.organization_id,
        email=email,
        role=role,
        token=generate_token(),
        status="pending",
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
        personal_message=personal_message,
        invited_by=ctx.user_id,
    )
    db.add(invitation)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race against a concurrent invite for the same address
        raise ValidationError(ALREADY_PENDING)

    event = await record_event(
        db,
        ctx.organization_id,
        INVITATION_CREATED,
        {"invitation_id": str(invitation.id)},
    )
    logger.info("Invitation %s issued to %s by %s", invitation.id, email, ctx.user_id)
    return invitation, [event]


async def list_invitations(
    db: AsyncSession, ctx: RequestContext, status: Optional[str] = None
) -> list[Invitation]:
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("Only admins and managers can view invitations")
    query = select(Invitation).where(Invitation.organization_id == ctx.organization_id)
    if status:
        query = query.where(Invitation.status == status)
    result = await db.execute(query.order_by(Invitation.created_at.desc()))
    return list(result.scalars().all())


async def revoke_invitation(
    db: AsyncSession, ctx: RequestContext, invitation_id: UUID
) -> Invitation:
    if not ctx.is_manager_or_admin:
        raise ForbiddenError("Only admins and managers can revoke invitations")
    invitation = (
        await db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.organization_id == ctx.organization_id,
            )
        )
    ).scalar_one_or_none()
    if invitation is None:
        raise NotFoundError("Invitation not found")
    if invitation.status != "pending":
        raise ValidationError(f"Invitation is already {invitation.status}")
    invitation.status = "expired"
    await db.flush()
    return invitation


async def accept_invitation(
    db: AsyncSession, token: str, password: str, full_name: str
) -> User:
    """Create the invited user. The token is single-use."""
    invitation = (
        await db.execute(select(Invitation).where(Invitation.token == token))
    ).scalar_one_or_none()
    if invitation is None or invitation.status != "pending":
        raise ValidationError("Invalid or already used invitation")

    if is_expired(invitation):
        invitation.status = "expired"
        await db.commit()
        raise ValidationError("Invitation has expired")

    existing = await db.execute(select(User.id).where(User.email == invitation.email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError("Email already registered")

    user = User(
        organization_id=invitation.organization_id,
        email=invitation.email,
        hashed_password=hash_password(password),
        full_name=full_name,
        role=invitation.role,
    )
    db.add(user)
    await db.flush()

    await seed_default_balances(db, user)
    invitation.status = "accepted"
    await db.flush()
    logger.info("Invitation %s accepted, user %s created", invitation.id, user.id)
    return user
