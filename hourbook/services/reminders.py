from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.config import settings
from hourbook.core.rbac import ADMIN, MANAGER
from hourbook.services.time_accounting import week_bucket
from hourbook.utils.email import send_past_due_reminder_email


logger = logging.getLogger(__name__)


def is_email_disallowed(email: Optional[str]) -> bool:
    return not email or email.strip().lower() in settings.DISALLOWED_EMAILS


def dashboard_url_for(user: dict) -> str:
    base = settings.FRONTEND_BASE_URL.rstrip("/")
    return f"{base}/admin" if user.get("role") in {ADMIN, MANAGER} else f"{base}/dashboard"


async def users_without_hours(db: AsyncIOMotorDatabase, week_start: datetime) -> tuple[list[dict], int]:
    """Active users whose timesheet for the week is missing or empty.

    Returns the users to remind and how many users were checked.
    """
    users = [u async for u in db["users"].find({"is_active": True, "is_archived": {"$ne": True}})]
    totals: dict = {}
    async for ts in db["timesheets"].find({"week_start": week_start}, {"user_id": 1, "total_hours": 1}):
        totals[ts["user_id"]] = ts.get("total_hours")
    due = [
        u for u in users
        if (u.get("notification") or {}).get("weekly_team_reminders") is not False
        and not totals.get(u["_id"])
        and not is_email_disallowed(u.get("email"))
    ]
    return due, len(users)


async def send_past_due_reminders(db: AsyncIOMotorDatabase, now: Optional[datetime] = None) -> dict:
    week_start = week_bucket(now or datetime.utcnow()).week_start
    week_label = f"{week_start:%b} {week_start.day}, {week_start.year}"
    due, checked = await users_without_hours(db, week_start)
    sent = 0
    failed = 0
    for user in due:
        try:
            await run_in_threadpool(
                send_past_due_reminder_email,
                to=user["email"],
                first_name=user.get("first_name"),
                week_label=week_label,
                dashboard_url=dashboard_url_for(user),
            )
            sent += 1
        except Exception:
            failed += 1
            logger.exception("Past-due reminder to %s failed", user.get("email"))
    logger.info("Past-due reminders for %s: %d sent, %d failed, %d users checked", week_label, sent, failed, checked)
    return {
        "emails_sent": sent,
        "emails_failed": failed,
        "users_checked": checked,
        "users_with_no_hours": len(due),
    }
