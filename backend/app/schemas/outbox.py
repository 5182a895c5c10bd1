from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel


class OutboxEventResponse(BaseModel):
    id: UUID
    event_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime
    claimed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DigestRunResponse(BaseModel):
    sent: int
    skipped: int
    failed: int
