from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from fastapi import Depends
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.core.exceptions import ForbiddenError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: UUID,
    organization_id: Optional[UUID],
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Issue a JWT carrying the caller's identity, tenant and role."""
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "org_id": str(organization_id) if organization_id else None,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry. Raises ``ValueError`` for any unusable token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError:
        raise ValueError("Invalid token")
    return payload


def require_role(*allowed_roles: str):
    """Dependency factory that checks the request context carries one of the roles.

    Usage:
        ctx: RequestContext = Depends(require_role("admin", "manager"))
    """
    from app.core.dependencies import get_request_context

    async def role_checker(ctx=Depends(get_request_context)):
        if ctx.role not in allowed_roles:
            raise ForbiddenError(
                f"Role '{ctx.role}' is not authorized. Required: {', '.join(allowed_roles)}"
            )
        return ctx

    return role_checker
