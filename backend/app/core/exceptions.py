"""Exception hierarchy shared by routers and services.

HTTP-facing errors subclass ``HTTPException`` so FastAPI renders them as
``{"detail": ...}`` without extra handlers. Accounting failures that happen
after a transition has committed are plain exceptions: they never reach a
client, the outbox relay records them instead.
"""

from typing import Optional

from fastapi import HTTPException, status


class LeaveAppException(HTTPException):
    """Base class for errors returned to API clients."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__


class AuthenticationError(LeaveAppException):
    def __init__(self, detail: str = "Invalid authentication credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(LeaveAppException):
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(LeaveAppException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(LeaveAppException):
    """Missing fields, bad input or a violated business rule."""

    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(ValidationError):
    """A state transition was attempted from a non-pending status."""

    def __init__(self, detail: str, current_status: Optional[str] = None):
        super().__init__(detail=detail)
        self.current_status = current_status


class BalanceAccountingError(Exception):
    """Balance bookkeeping could not be applied for an approved request."""


class InsufficientBalanceError(BalanceAccountingError):
    def __init__(self, remaining_days: float, requested_days: float):
        self.remaining_days = remaining_days
        self.requested_days = requested_days
        super().__init__(
            f"insufficient balance: {remaining_days:g} day(s) remaining, "
            f"{requested_days:g} requested"
        )
