"""Transactional outbox for side effects of leave state transitions.

A transition writes its side effects as ``OutboxEvent`` rows in the same
transaction as the status change. After that transaction commits the caller
hands the rows to ``process_events``; anything that fails stays visible on the
row (``attempts``, ``last_error``) and is retried by the background relay
until it succeeds or is marked ``failed`` for manual reconciliation. A
failing side effect never undoes the transition that produced it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import BalanceAccountingError, NotFoundError, ValidationError
from app.models.invitation import Invitation
from app.models.leave_request import LeaveRequest
from app.models.outbox_event import OutboxEvent
from app.models.user import User
from app.services.leave.balances import apply_approval
from app.services.leave.scope import expand_scope, scope_for_profile
from app.services.notifications.dispatcher import notify

logger = logging.getLogger(__name__)

BALANCE_APPLY = "balance.apply"
STATUS_CHANGED = "leave_request.status_changed"
INVITATION_CREATED = "invitation.created"


class DeliveryError(Exception):
    """A notification could not be delivered and should be retried."""


async def record_event(
    db: AsyncSession,
    organization_id: UUID,
    event_type: str,
    payload: dict[str, Any],
) -> OutboxEvent:
    event = OutboxEvent(
        organization_id=organization_id,
        event_type=event_type,
        payload=payload,
        status="pending",
        attempts=0,
    )
    db.add(event)
    await db.flush()
    return event


# ── Handlers ─────────────────────────────────────────────────────────────────


async def _handle_balance_apply(db: AsyncSession, event: OutboxEvent) -> None:
    p = event.payload
    result = await apply_approval(
        db,
        user_id=UUID(p["user_id"]),
        leave_type_id=UUID(p["leave_type_id"]),
        days_requested=float(p["days_requested"]),
        organization_id=event.organization_id,
        enforce=bool(p.get("enforce", True)),
        year=p.get("year"),
    )
    if result.warning:
        logger.warning("Balance warning for request %s: %s", p.get("request_id"), result.warning)


async def _handle_status_changed(db: AsyncSession, event: OutboxEvent) -> None:
    p = event.payload
    result = await db.execute(
        select(LeaveRequest)
        .options(
            selectinload(LeaveRequest.user).selectinload(User.organization),
            selectinload(LeaveRequest.leave_type),
        )
        .where(
            LeaveRequest.id == UUID(p["request_id"]),
            LeaveRequest.organization_id == event.organization_id,
        )
    )
    leave_request = result.scalar_one_or_none()
    if leave_request is None:
        logger.warning("Leave request %s vanished before notification", p["request_id"])
        return

    requester = leave_request.user
    org_name = requester.organization.name if requester.organization else settings.APP_NAME
    leave_type_name = leave_request.leave_type.name if leave_request.leave_type else "leave"
    common = {
        "employee_name": requester.full_name,
        "leave_type": leave_type_name,
        "start_date": leave_request.start_date.isoformat(),
        "end_date": leave_request.end_date.isoformat(),
        "organization_name": org_name,
    }

    outcome = await notify(
        db,
        "leave_request",
        {
            **common,
            "to": requester.email,
            "user_id": str(requester.id),
            "status": p["status"],
            "review_comment": leave_request.review_comment,
            "request_id": str(leave_request.id),
        },
    )
    if not outcome.success and outcome.retryable:
        raise DeliveryError(f"leave_request notification: {outcome.reason}")

    if p["status"] != "approved":
        return

    # Announce approved leave to the rest of the requester's scope
    visible_ids = await expand_scope(db, scope_for_profile(requester))
    visible_ids.discard(requester.id)
    if not visible_ids:
        return
    colleagues = await db.execute(
        select(User).where(
            User.id.in_(visible_ids),
            User.organization_id == event.organization_id,
            User.is_active.is_(True),
        )
    )
    for colleague in colleagues.scalars().all():
        team_outcome = await notify(
            db,
            "team_leave",
            {**common, "to": colleague.email, "user_id": str(colleague.id)},
        )
        if not team_outcome.success and team_outcome.retryable:
            logger.warning(
                "Team leave notification to %s failed: %s", colleague.email, team_outcome.reason
            )


async def _handle_invitation_created(db: AsyncSession, event: OutboxEvent) -> None:
    p = event.payload
    result = await db.execute(
        select(Invitation)
        .options(selectinload(Invitation.organization), selectinload(Invitation.inviter))
        .where(
            Invitation.id == UUID(p["invitation_id"]),
            Invitation.organization_id == event.organization_id,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None or invitation.status != "pending":
        return

    outcome = await notify(
        db,
        "invitation",
        {
            "to": invitation.email,
            "organization_name": invitation.organization.name,
            "role": invitation.role,
            "inviter_name": invitation.inviter.full_name if invitation.inviter else None,
            "invite_url": f"{settings.APP_URL.rstrip('/')}/team/invite?token={invitation.token}",
            "expires_at": invitation.expires_at.date().isoformat(),
            "personal_message": invitation.personal_message,
        },
    )
    if not outcome.success and outcome.retryable:
        raise DeliveryError(f"invitation notification: {outcome.reason}")


HANDLERS: dict[str, Callable[[AsyncSession, OutboxEvent], Awaitable[None]]] = {
    BALANCE_APPLY: _handle_balance_apply,
    STATUS_CHANGED: _handle_status_changed,
    INVITATION_CREATED: _handle_invitation_created,
}


# ── Processing ───────────────────────────────────────────────────────────────


async def _claim(db: AsyncSession, event_id: UUID) -> Optional[OutboxEvent]:
    """Move a pending event to ``processing``; None when another worker got there first."""
    result = await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, OutboxEvent.status == "pending")
        .values(
            status="processing",
            attempts=OutboxEvent.attempts + 1,
            claimed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount != 1:
        return None
    return await db.get(OutboxEvent, event_id, populate_existing=True)


async def _settle(db: AsyncSession, event_id: UUID, attempt: int, **values: Any) -> bool:
    """Write the outcome only while this worker still holds the claim."""
    result = await db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.id == event_id,
            OutboxEvent.status == "processing",
            OutboxEvent.attempts == attempt,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def process_event(db: AsyncSession, event_id: UUID) -> Optional[OutboxEvent]:
    """Claim one pending event, run it and commit its outcome.

    The handler's writes commit in the same transaction as the ``done`` mark,
    and only if the claim still holds, so an event never takes effect twice.
    """
    event = await db.get(OutboxEvent, event_id)
    if event is None or event.status != "pending":
        return event

    event = await _claim(db, event_id)
    if event is None:
        logger.info("Outbox event %s already claimed by another worker", event_id)
        return await db.get(OutboxEvent, event_id, populate_existing=True)

    attempt = event.attempts
    event_type = event.event_type
    handler = HANDLERS.get(event_type)
    try:
        if handler is None:
            raise LookupError(f"no handler for event type '{event_type}'")
        await handler(db, event)
    except Exception as exc:
        await db.rollback()
        # Accounting failures need a human; retrying would not change the outcome
        give_up = isinstance(exc, (BalanceAccountingError, LookupError)) or (
            attempt >= settings.OUTBOX_MAX_ATTEMPTS
        )
        settled = await _settle(
            db,
            event_id,
            attempt,
            status="failed" if give_up else "pending",
            last_error=str(exc)[:2000],
        )
        await db.commit()
        if not settled:
            logger.warning("Outbox event %s lost its claim before recording a failure", event_id)
        elif give_up:
            logger.error(
                "Outbox event %s (%s) failed after %d attempt(s): %s",
                event_id,
                event_type,
                attempt,
                exc,
            )
        else:
            logger.warning(
                "Outbox event %s (%s) attempt %d failed: %s",
                event_id,
                event_type,
                attempt,
                exc,
            )
        return await db.get(OutboxEvent, event_id, populate_existing=True)

    settled = await _settle(
        db,
        event_id,
        attempt,
        status="done",
        last_error=None,
        processed_at=datetime.now(timezone.utc),
    )
    if settled:
        await db.commit()
    else:
        await db.rollback()
        logger.warning("Outbox event %s lost its claim, discarding attempt %d", event_id, attempt)
    return await db.get(OutboxEvent, event_id, populate_existing=True)


async def process_events(
    db: AsyncSession, events: Iterable[OutboxEvent]
) -> list[OutboxEvent]:
    """Process freshly recorded events. Call only after the transition committed."""
    event_ids = [e.id for e in events]
    processed = []
    for event_id in event_ids:
        event = await process_event(db, event_id)
        if event is not None:
            processed.append(event)
    return processed


async def relay_pending(db: AsyncSession, limit: int = 100) -> int:
    """Retry pending events in creation order. Returns how many were handled.

    Claims older than ``OUTBOX_CLAIM_TIMEOUT_SECONDS`` belong to a worker that
    died mid-event; they go back to ``pending`` first.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS)
    stale = await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.status == "processing", OutboxEvent.claimed_at < cutoff)
        .values(status="pending")
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if stale.rowcount:
        logger.warning("Requeued %d stale outbox event(s)", stale.rowcount)

    result = await db.execute(
        select(OutboxEvent.id)
        .where(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
    )
    event_ids = list(result.scalars().all())
    for event_id in event_ids:
        await process_event(db, event_id)
    return len(event_ids)


async def list_events(
    db: AsyncSession,
    organization_id: UUID,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[OutboxEvent]:
    query = select(OutboxEvent).where(OutboxEvent.organization_id == organization_id)
    if status:
        query = query.where(OutboxEvent.status == status)
    result = await db.execute(query.order_by(OutboxEvent.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def retry_event(db: AsyncSession, organization_id: UUID, event_id: UUID) -> OutboxEvent:
    """Put a failed event back in the queue and run it once more."""
    event = (
        await db.execute(
            select(OutboxEvent).where(
                OutboxEvent.id == event_id,
                OutboxEvent.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()
    if event is None:
        raise NotFoundError("Outbox event not found")
    if event.status != "failed":
        raise ValidationError(f"Only failed events can be retried (status is {event.status})")

    event.status = "pending"
    await db.commit()
    return await process_event(db, event.id)
