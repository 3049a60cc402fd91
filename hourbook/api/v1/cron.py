import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.config import settings
from hourbook.db.mongo import get_mongo_db
from hourbook.schemas.report_schema import CronResultOut
from hourbook.services.reminders import send_past_due_reminders


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    # Local runs skip the secret so jobs can be triggered by hand
    if settings.is_development:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not settings.CRON_SECRET or not hmac.compare_digest(authorization or "", expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/past-due-reminder", response_model=CronResultOut)
async def past_due_reminder(db: AsyncIOMotorDatabase = Depends(get_mongo_db), _: None = Depends(verify_cron_secret)):
    if settings.PAUSE_CRON_JOBS:
        logger.info("Cron jobs paused; skipping past-due reminders")
        return CronResultOut(paused=True, message="Cron jobs are paused")
    result = await send_past_due_reminders(db)
    return CronResultOut(message=f"Sent {result['emails_sent']} past-due reminder emails", **result)
