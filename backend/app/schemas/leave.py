from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    days_per_year: int = Field(default=0, ge=0)
    color: str = Field(default="#22d3ee", max_length=20)
    requires_approval: bool = True
    requires_balance: bool = True
    leave_category: str = Field(default="other", max_length=50)


class LeaveTypeResponse(BaseModel):
    id: UUID
    name: str
    days_per_year: int
    color: str
    requires_approval: bool
    requires_balance: bool
    leave_category: str

    model_config = {"from_attributes": True}


class LeaveBalanceResponse(BaseModel):
    id: UUID
    user_id: UUID
    leave_type_id: UUID
    year: int
    entitled_days: float
    used_days: float
    remaining_days: float

    model_config = {"from_attributes": True}


class LeaveBalanceUpdate(BaseModel):
    user_id: UUID
    leave_type_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    entitled_days: float = Field(..., ge=0)
    used_days: Optional[float] = Field(None, ge=0)


class LeaveTypeOptionResponse(BaseModel):
    leave_type: LeaveTypeResponse
    balance: Optional[LeaveBalanceResponse] = None
    disabled: bool
    reason: Optional[str] = None


class LeaveRequestCreate(BaseModel):
    leave_type_id: UUID
    start_date: date
    end_date: date
    notes: Optional[str] = None


class AbsenceCreate(LeaveRequestCreate):
    user_id: UUID


class LeaveRequestResponse(BaseModel):
    id: UUID
    organization_id: UUID
    user_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    days_requested: float
    status: str
    notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_comment: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LeaveRequestCreatedResponse(BaseModel):
    request: LeaveRequestResponse
    warnings: list[str] = []


class LeaveRequestListResponse(BaseModel):
    items: list[LeaveRequestResponse]
    total: int


class ApprovalRequest(BaseModel):
    action: str  # approve, reject
    comment: Optional[str] = Field(None, max_length=2000)


class ApprovalResponse(BaseModel):
    success: bool
    message: str
    status: str


class OverlapResponse(BaseModel):
    user_id: UUID
    full_name: str
    leave_type: Optional[str] = None
    color: Optional[str] = None
    start_date: date
    end_date: date
    status: str
