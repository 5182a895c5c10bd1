"""Explicit per-request caller context.

Built once by the ``get_request_context`` dependency and passed to every
service call, so no service ever reads the caller from ambient state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

MANAGER_ROLES = ("admin", "manager")


@dataclass(frozen=True)
class RequestContext:
    user_id: UUID
    organization_id: UUID
    role: str
    team_id: Optional[UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_manager_or_admin(self) -> bool:
        return self.role in MANAGER_ROLES

    @classmethod
    def from_user(cls, user) -> "RequestContext":
        return cls(
            user_id=user.id,
            organization_id=user.organization_id,
            role=user.role,
            team_id=user.team_id,
        )
