"""Project rollups of timesheet hours.

Rollups are always recomputed from every timesheet that references the
project, never adjusted incrementally, so running a recompute twice (or
late) converges on the same numbers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.schemas.common import TimesheetStatus


logger = logging.getLogger(__name__)


def project_ids_from_entries(entries: Iterable[dict]) -> list[ObjectId]:
    seen: list[ObjectId] = []
    for e in entries:
        pid = e.get("project_id")
        if pid is not None and pid not in seen:
            seen.append(pid)
    return seen


async def recalculate_project_timesheet_hours(db: AsyncIOMotorDatabase, project_id: ObjectId) -> dict:
    total = 0.0
    approved = 0.0
    billable = 0.0
    cursor = db["timesheets"].find({"entries.project_id": project_id}, {"status": 1, "entries": 1})
    async for ts in cursor:
        is_approved = ts.get("status") == TimesheetStatus.approved.value
        for e in ts.get("entries") or []:
            if e.get("project_id") != project_id:
                continue
            hours = float(e.get("hours") or 0)
            total += hours
            if is_approved:
                approved += hours
            if e.get("is_billable"):
                billable += hours
    rollup = {
        "timesheet_hours": round(total, 2),
        "timesheet_approved_hours": round(approved, 2),
        "timesheet_billable_hours": round(billable, 2),
    }
    await db["projects"].update_one({"_id": project_id}, {"$set": rollup})
    return rollup


async def recalculate_multiple_project_hours(db: AsyncIOMotorDatabase, project_ids: Iterable[ObjectId]) -> list[tuple]:
    """Recompute each distinct project concurrently.

    Returns ``(project_id, rollup_or_exception)`` pairs; one failing project
    does not stop the others.
    """
    unique = list(dict.fromkeys(project_ids))
    results = await asyncio.gather(
        *(recalculate_project_timesheet_hours(db, pid) for pid in unique),
        return_exceptions=True,
    )
    return list(zip(unique, results))


async def recalculate_projects_in_background(db: AsyncIOMotorDatabase, project_ids: Iterable[ObjectId], reason: str) -> None:
    """Entry point for background tasks; failures are logged, never raised."""
    for pid, result in await recalculate_multiple_project_hours(db, project_ids):
        if isinstance(result, Exception):
            logger.error("Failed to recalculate project hours for %s on %s", pid, reason, exc_info=result)
