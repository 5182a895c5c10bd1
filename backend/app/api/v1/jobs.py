"""Entry points for externally scheduled jobs (cron, Cloud Scheduler, ...)."""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.dependencies import get_db
from app.core.exceptions import AuthenticationError
from app.schemas.outbox import DigestRunResponse
from app.services.notifications.digests import send_pending_reminders, send_weekly_summaries

router = APIRouter(prefix="/jobs", tags=["jobs"])


async def verify_job_secret(x_job_secret: Optional[str] = Header(None)) -> None:
    if not settings.JOB_SECRET or not x_job_secret:
        raise AuthenticationError("Job secret required")
    if not secrets.compare_digest(x_job_secret, settings.JOB_SECRET):
        raise AuthenticationError("Invalid job secret")


@router.post(
    "/pending-reminders",
    response_model=DigestRunResponse,
    dependencies=[Depends(verify_job_secret)],
)
async def run_pending_reminders(db: AsyncSession = Depends(get_db)):
    report = await send_pending_reminders(db)
    return DigestRunResponse(sent=report.sent, skipped=report.skipped, failed=report.failed)


@router.post(
    "/weekly-summary",
    response_model=DigestRunResponse,
    dependencies=[Depends(verify_job_secret)],
)
async def run_weekly_summary(db: AsyncSession = Depends(get_db)):
    report = await send_weekly_summaries(db)
    return DigestRunResponse(sent=report.sent, skipped=report.skipped, failed=report.failed)
