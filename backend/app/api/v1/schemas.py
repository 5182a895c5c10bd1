"""Pydantic schemas for auth, organization, invitation and settings endpoints."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


# ── Auth Schemas ──────────────────────────────────────────────────────────────


class RegisterOrgRequest(BaseModel):
    org_name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=2, max_length=255)
    admin_email: EmailStr
    password: str = Field(..., min_length=6)
    admin_name: str = Field(..., min_length=1, max_length=255)
    country_code: str = Field(default="PL", min_length=2, max_length=2)
    locale: str = Field(default="pl", max_length=10)
    google_domain: Optional[str] = Field(None, max_length=255)
    require_google_domain: bool = False


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class JoinOrgRequest(BaseModel):
    token: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=6)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: str
    organization_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    gender: Optional[str] = None
    children_count: int = 0
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Organization Schemas ──────────────────────────────────────────────────────


class OrgResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    country_code: str
    locale: str
    google_domain: Optional[str] = None
    require_google_domain: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class UpdateOrgRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=2, max_length=255)
    country_code: Optional[str] = Field(None, min_length=2, max_length=2)
    locale: Optional[str] = Field(None, max_length=10)
    google_domain: Optional[str] = Field(None, max_length=255)
    require_google_domain: Optional[bool] = None
    admin_id: Optional[UUID] = Field(
        None, description="Hand the admin role to this member; the caller becomes an employee"
    )


# ── Invitation Schemas ────────────────────────────────────────────────────────


class InvitationCreate(BaseModel):
    email: EmailStr
    role: str = Field(default="employee", pattern="^(admin|manager|employee)$")
    personal_message: Optional[str] = Field(None, max_length=2000)


class InvitationResponse(BaseModel):
    id: UUID
    email: str
    role: str
    status: str
    expires_at: datetime
    personal_message: Optional[str] = None
    invited_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreatedResponse(InvitationResponse):
    invite_url: str


# ── Settings Schemas ──────────────────────────────────────────────────────────


class NotificationSettings(BaseModel):
    email_notifications: bool = True
    leave_request_reminders: bool = True
    team_leave_notifications: bool = True
    weekly_summary: bool = True

    model_config = {"from_attributes": True}


class NotificationSettingsUpdate(BaseModel):
    email_notifications: Optional[bool] = None
    leave_request_reminders: Optional[bool] = None
    team_leave_notifications: Optional[bool] = None
    weekly_summary: Optional[bool] = None
