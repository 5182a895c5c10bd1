from app.models.organization import Organization
from app.models.user import User
from app.models.team import Team
from app.models.leave_type import LeaveType
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveRequest
from app.models.invitation import Invitation
from app.models.user_settings import UserSettings
from app.models.outbox_event import OutboxEvent

__all__ = [
    "Organization",
    "User",
    "Team",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "Invitation",
    "UserSettings",
    "OutboxEvent",
]
