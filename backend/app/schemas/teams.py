from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    manager_id: Optional[UUID] = None


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    manager_id: Optional[UUID] = None


class TeamResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    manager_id: Optional[UUID] = None
    member_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamMember(BaseModel):
    id: UUID
    full_name: str
    email: str
    role: str

    model_config = {"from_attributes": True}


class TeamDetailResponse(TeamResponse):
    members: list[TeamMember] = []


class RosterChange(BaseModel):
    member_ids: list[UUID] = Field(..., min_length=1)


class RosterChangeResponse(BaseModel):
    message: str
    count: int
    members: list[TeamMember]
