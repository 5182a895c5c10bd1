"""Authentication endpoints: register-org, login, join, me."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas import (
    JoinOrgRequest,
    LoginRequest,
    RegisterOrgRequest,
    TokenResponse,
    UserResponse,
)
from app.core.dependencies import get_current_user, get_db
from app.core.exceptions import AuthenticationError, ForbiddenError
from app.core.security import create_access_token, verify_password
from app.models.user import User
from app.services.invitations import accept_invitation
from app.services.organizations import register_organization

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.organization_id, user.role)
    )


# ── POST /register-org ────────────────────────────────────────────────────────


@router.post("/register-org", response_model=TokenResponse, status_code=201)
async def register_org(body: RegisterOrgRequest, db: AsyncSession = Depends(get_db)):
    """Create a new organization and its admin user. Returns a JWT."""
    _, admin = await register_organization(
        db,
        org_name=body.org_name,
        slug=body.slug,
        admin_email=body.admin_email,
        admin_name=body.admin_name,
        password=body.password,
        country_code=body.country_code,
        locale=body.locale,
        google_domain=body.google_domain,
        require_google_domain=body.require_google_domain,
    )
    return _token_for(admin)


# ── POST /login ───────────────────────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise ForbiddenError("Account is deactivated")

    return _token_for(user)


# ── POST /join ────────────────────────────────────────────────────────────────


@router.post("/join", response_model=TokenResponse, status_code=201)
async def join_org(body: JoinOrgRequest, db: AsyncSession = Depends(get_db)):
    """Accept an invitation and create the invited user."""
    user = await accept_invitation(db, body.token, body.password, body.full_name)
    return _token_for(user)


# ── GET /me ───────────────────────────────────────────────────────────────────


@router.get("/me", response_model=UserResponse)
async def get_me(current_user=Depends(get_current_user)):
    """Return the current authenticated user's profile."""
    return current_user
