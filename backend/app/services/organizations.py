"""Organization onboarding and settings."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.core.security import hash_password
from app.models.leave_type import LeaveType
from app.models.organization import Organization
from app.models.user import User
from app.services.leave.balances import seed_default_balances

logger = logging.getLogger(__name__)

DEFAULT_LEAVE_TYPES: list[dict[str, Any]] = [
    {
        "name": "Annual leave",
        "days_per_year": 26,
        "color": "#22d3ee",
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "vacation",
    },
    {
        "name": "On-demand leave",
        "days_per_year": 4,
        "color": "#a78bfa",
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "on_demand",
    },
    {
        "name": "Sick leave",
        "days_per_year": 0,
        "color": "#f87171",
        "requires_approval": False,
        "requires_balance": False,
        "leave_category": "sick",
    },
    {
        "name": "Maternity leave",
        "days_per_year": 140,
        "color": "#f472b6",
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "maternity",
    },
    {
        "name": "Paternity leave",
        "days_per_year": 14,
        "color": "#60a5fa",
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "paternity",
    },
    {
        "name": "Childcare leave",
        "days_per_year": 2,
        "color": "#fbbf24",
        "requires_approval": True,
        "requires_balance": True,
        "leave_category": "childcare",
    },
    {
        "name": "Unpaid leave",
        "days_per_year": 0,
        "color": "#9ca3af",
        "requires_approval": True,
        "requires_balance": False,
        "leave_category": "unpaid",
    },
]

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "org"


async def _slug_taken(
    db: AsyncSession, slug: str, exclude_id: Optional[uuid.UUID] = None
) -> bool:
    query = select(Organization.id).where(Organization.slug == slug)
    if exclude_id is not None:
        query = query.where(Organization.id != exclude_id)
    return (await db.execute(query)).scalar_one_or_none() is not None


async def get_organization(db: AsyncSession, organization_id: uuid.UUID) -> Organization:
    result = await db.execute(select(Organization).where(Organization.id == organization_id))
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFoundError("Organization not found")
    return org


async def register_organization(
    db: AsyncSession,
    *,
    org_name: str,
    admin_email: str,
    admin_name: str,
    password: str,
    slug: Optional[str] = None,
    country_code: str = "PL",
    locale: str = "pl",
    google_domain: Optional[str] = None,
    require_google_domain: bool = False,
) -> tuple[Organization, User]:
    """Create an organization, its admin, default leave types and balances."""
    admin_email = admin_email.lower()
    existing = await db.execute(select(User.id).where(User.email == admin_email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError("Email already registered")

    if slug:
        if not SLUG_PATTERN.match(slug):
            raise ValidationError("Slug may contain only lowercase letters, digits and dashes")
        if await _slug_taken(db, slug):
            raise ValidationError("Slug already taken")
    else:
        slug = slugify(org_name)
        if await _slug_taken(db, slug):
            slug = f"{slug}-{uuid.uuid4().hex[:6]}"

    if require_google_domain and not google_domain:
        raise ValidationError("google_domain is required when require_google_domain is set")

    org = Organization(
        name=org_name,
        slug=slug,
        country_code=country_code.upper(),
        locale=locale,
        google_domain=google_domain.lower() if google_domain else None,
        require_google_domain=require_google_domain,
        settings={},
    )
    db.add(org)
    await db.flush()  # get org.id

    for values in DEFAULT_LEAVE_TYPES:
        db.add(LeaveType(organization_id=org.id, **values))

    admin = User(
        organization_id=org.id,
        email=admin_email,
        hashed_password=hash_password(password),
        full_name=admin_name,
        role="admin",
    )
    db.add(admin)
    await db.flush()

    await seed_default_balances(db, admin)
    logger.info("Organization %s (%s) registered by %s", org.id, org.slug, admin_email)
    return org, admin


async def update_organization(
    db: AsyncSession, ctx: RequestContext, changes: dict[str, Any]
) -> Organization:
    """Apply admin settings changes; ``admin_id`` hands the admin role over."""
    if not ctx.is_admin:
        raise ForbiddenError("Only admins can change organization settings")
    org = await get_organization(db, ctx.organization_id)

    slug = changes.get("slug")
    if slug is not None and slug != org.slug:
        if not SLUG_PATTERN.match(slug):
            raise ValidationError("Slug may contain only lowercase letters, digits and dashes")
        if await _slug_taken(db, slug, exclude_id=org.id):
            raise ValidationError("Slug already taken")
        org.slug = slug

    if changes.get("name") is not None:
        org.name = changes["name"]
    if changes.get("country_code") is not None:
        org.country_code = changes["country_code"].upper()
    if changes.get("locale") is not None:
        org.locale = changes["locale"]
    if "google_domain" in changes:
        domain = changes["google_domain"]
        org.google_domain = domain.lower() if domain else None
    if changes.get("require_google_domain") is not None:
        org.require_google_domain = changes["require_google_domain"]
    if org.require_google_domain and not org.google_domain:
        raise ValidationError("google_domain is required when require_google_domain is set")

    new_admin_id = changes.get("admin_id")
    if new_admin_id is not None and new_admin_id != ctx.user_id:
        new_admin = (
            await db.execute(
                select(User).where(
                    User.id == new_admin_id,
                    User.organization_id == org.id,
                    User.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if new_admin is None:
            raise ValidationError("New admin must be an active member of the organization")
        current_admin = await db.get(User, ctx.user_id)
        new_admin.role = "admin"
        current_admin.role = "employee"
        logger.info("Admin of org %s transferred from %s to %s", org.id, ctx.user_id, new_admin_id)

    await db.flush()
    return org
