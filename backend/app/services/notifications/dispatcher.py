"""Preference-gated notification dispatch.

``notify`` is the single entry point. It never raises: every outcome,
including transport failures, comes back as a ``NotifyResult`` so callers can
treat notifications as a best-effort side effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.user_settings import UserSettings
from app.services.notifications.email import email_service

logger = logging.getLogger(__name__)

PREFERENCE_DISABLED = "User preference disabled"

# Which preference switch gates each event kind (None: not gated)
PREFERENCE_KEYS: dict[str, Optional[str]] = {
    "leave_request": "email_notifications",
    "team_leave": "team_leave_notifications",
    "leave_reminder": "leave_request_reminders",
    "weekly_summary": "weekly_summary",
    "invitation": None,
}


@dataclass(frozen=True)
class NotifyResult:
    success: bool
    reason: Optional[str] = None
    retryable: bool = False


@dataclass(frozen=True)
class NotificationPreferences:
    email_notifications: bool = True
    leave_request_reminders: bool = True
    team_leave_notifications: bool = True
    weekly_summary: bool = True

    def allows(self, event_type: str) -> bool:
        key = PREFERENCE_KEYS.get(event_type)
        if key is None:
            return True
        return self.email_notifications and getattr(self, key)


async def get_preferences(db: AsyncSession, user_id: UUID) -> NotificationPreferences:
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        return NotificationPreferences()
    return NotificationPreferences(
        email_notifications=row.email_notifications,
        leave_request_reminders=row.leave_request_reminders,
        team_leave_notifications=row.team_leave_notifications,
        weekly_summary=row.weekly_summary,
    )


# ── Message rendering ────────────────────────────────────────────────────────


def _render_leave_request(p: dict[str, Any]) -> tuple[str, str]:
    status = p.get("status", "updated")
    subject = f"Your leave request was {status}"
    body = (
        f"Hello {p.get('employee_name', '')},\n\n"
        f"Your {p.get('leave_type', 'leave')} request for "
        f"{p.get('start_date')} - {p.get('end_date')} was {status}."
    )
    if p.get("review_comment"):
        body += f"\n\nComment: {p['review_comment']}"
    body += f"\n\n{p.get('organization_name', settings.APP_NAME)}"
    return subject, body


def _render_team_leave(p: dict[str, Any]) -> tuple[str, str]:
    subject = f"{p.get('employee_name', 'A colleague')} will be away"
    body = (
        f"{p.get('employee_name', 'A colleague')} has approved "
        f"{p.get('leave_type', 'leave')} from {p.get('start_date')} to {p.get('end_date')}.\n\n"
        f"{p.get('organization_name', settings.APP_NAME)}"
    )
    return subject, body


def _render_invitation(p: dict[str, Any]) -> tuple[str, str]:
    org_name = p.get("organization_name", settings.APP_NAME)
    subject = f"You have been invited to join {org_name}"
    body = (
        f"{p.get('inviter_name', 'Someone')} invited you to join {org_name} "
        f"as {p.get('role', 'employee')}.\n\n"
        f"Accept the invitation: {p.get('invite_url')}\n"
        f"The invitation expires on {p.get('expires_at')}."
    )
    if p.get("personal_message"):
        body += f"\n\n{p['personal_message']}"
    return subject, body


def _render_leave_reminder(p: dict[str, Any]) -> tuple[str, str]:
    count = p.get("pending_count", len(p.get("requests", [])))
    subject = f"{count} leave request(s) awaiting review"
    lines = [
        f"- {r.get('employee_name')}: {r.get('leave_type')} from {r.get('start_date')}"
        f" (requested {r.get('request_date')})"
        for r in p.get("requests", [])
    ]
    body = (
        f"There are {count} pending leave request(s) in "
        f"{p.get('organization_name', settings.APP_NAME)}:\n\n" + "\n".join(lines)
    )
    return subject, body


def _render_weekly_summary(p: dict[str, Any]) -> tuple[str, str]:
    subject = f"Leave summary {p.get('week_start')} - {p.get('week_end')}"
    lines = [
        f"- {u.get('employee_name')}: {u.get('leave_type')} "
        f"{u.get('start_date')} - {u.get('end_date')}"
        for u in p.get("upcoming_leaves", [])
    ]
    body = (
        f"{p.get('organization_name', settings.APP_NAME)} this week\n\n"
        f"Approved leaves: {p.get('total_leaves', 0)}\n"
        f"Pending requests: {p.get('pending_requests', 0)}\n"
    )
    if lines:
        body += "\n" + "\n".join(lines)
    return subject, body


_RENDERERS: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    "leave_request": _render_leave_request,
    "team_leave": _render_team_leave,
    "invitation": _render_invitation,
    "leave_reminder": _render_leave_reminder,
    "weekly_summary": _render_weekly_summary,
}


async def notify(db: AsyncSession, event_type: str, payload: dict[str, Any]) -> NotifyResult:
    """Send one notification if the recipient's preferences allow it."""
    try:
        renderer = _RENDERERS.get(event_type)
        if renderer is None:
            return NotifyResult(False, f"Unknown event type '{event_type}'")

        recipient = payload.get("to")
        if not recipient:
            return NotifyResult(False, "Missing recipient")

        user_id = payload.get("user_id")
        if user_id is not None:
            prefs = await get_preferences(db, UUID(str(user_id)))
            if not prefs.allows(event_type):
                logger.info(
                    "Notification %s skipped for user %s: preference disabled",
                    event_type,
                    user_id,
                )
                return NotifyResult(False, PREFERENCE_DISABLED)

        if not email_service.is_configured:
            logger.warning("Email not configured, dropping %s to %s", event_type, recipient)
            return NotifyResult(False, "Email not configured")

        subject, body = renderer(payload)
        sent = await email_service.send_email(to=recipient, subject=subject, body_text=body)
        if not sent:
            return NotifyResult(False, "Delivery failed", retryable=True)
        return NotifyResult(True)
    except Exception:
        logger.exception("Error sending %s notification", event_type)
        return NotifyResult(False, "Internal error", retryable=True)
