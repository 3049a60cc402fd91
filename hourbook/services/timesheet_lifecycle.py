"""Weekly timesheet creation and status transitions.

Who may perform which transition from which status is decided by
``hourbook.core.rbac.TRANSITIONS``; this module only applies the effects.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.rbac import ADMIN, MANAGER, authorize_transition, require_roles
from hourbook.schemas.common import TimesheetAction, TimesheetStatus
from hourbook.services.project_hours import project_ids_from_entries
from hourbook.services.time_accounting import compute_totals, timesheet_id, week_bucket
from hourbook.services.timesheet_entries import load_timesheet


logger = logging.getLogger(__name__)

BULK_APPROVE_BATCH_SIZE = 200


def new_timesheet_doc(user_id: ObjectId, day, now: datetime) -> dict:
    bucket = week_bucket(day)
    return {
        "_id": timesheet_id(user_id, bucket.week_start),
        "user_id": user_id,
        "week_start": bucket.week_start,
        "week_end": bucket.week_end,
        "year": bucket.year,
        "week_number": bucket.week_number,
        "status": TimesheetStatus.unsubmitted.value,
        "entries": [],
        **compute_totals([]),
        "is_locked": False,
        "created_at": now,
        "updated_at": now,
    }


async def get_or_create_timesheet(
    db: AsyncIOMotorDatabase,
    user_id: ObjectId,
    day,
    now: Optional[datetime] = None,
) -> tuple[dict, bool]:
    """Return ``(timesheet, created)`` for the week containing ``day``.

    The deterministic id makes the upsert idempotent: concurrent callers
    for the same user and week all land on one document.
    """
    now = now or datetime.utcnow()
    doc = new_timesheet_doc(user_id, day, now)
    on_insert = {k: v for k, v in doc.items() if k != "_id"}
    res = await db["timesheets"].update_one({"_id": doc["_id"]}, {"$setOnInsert": on_insert}, upsert=True)
    created = getattr(res, "upserted_id", None) is not None
    if created:
        logger.info("Created timesheet %s", doc["_id"])
        return doc, True
    return await db["timesheets"].find_one({"_id": doc["_id"]}), False


async def _notify_owner(db: AsyncIOMotorDatabase, timesheet: dict, kind: str, payload: dict, now: datetime) -> None:
    try:
        await db["notifications"].insert_one({
            "user_id": timesheet["user_id"],
            "type": kind,
            "payload": {"timesheet_id": timesheet["_id"], "week_start": timesheet.get("week_start"), **payload},
            "read": False,
            "created_at": now,
        })
    except Exception:
        # Notifications are non-fatal
        logger.warning("Could not notify owner of %s", timesheet.get("_id"), exc_info=True)


async def apply_action(
    db: AsyncIOMotorDatabase,
    ts_id: str,
    action: str,
    user: dict,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[Optional[dict], Optional[dict], list[ObjectId]]:
    """Run one lifecycle action.

    Returns ``(timesheet, totals, project_ids)``: the updated document (None
    after delete), the totals for ``recalculate`` and the projects whose
    rollups need refreshing.
    """
    now = now or datetime.utcnow()
    timesheet = await load_timesheet(db, ts_id)
    authorize_transition(action, user, timesheet)
    affected: list[ObjectId] = []
    totals: Optional[dict] = None
    update: dict = {}

    if action == TimesheetAction.submit.value:
        if any(e.get("is_running") is True for e in timesheet.get("entries") or []):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stop running timer first")
        update = {"$set": {"status": TimesheetStatus.submitted.value, "submitted_at": now, "updated_at": now}}
    elif action == TimesheetAction.approve.value:
        update = {"$set": {
            "status": TimesheetStatus.approved.value,
            "approved_by": ObjectId(user["id"]),
            "approved_at": now,
            "is_locked": True,
            "updated_at": now,
        }}
        affected = project_ids_from_entries(timesheet.get("entries") or [])
    elif action == TimesheetAction.reject.value:
        update = {"$set": {
            "status": TimesheetStatus.rejected.value,
            "rejected_at": now,
            "rejection_reason": reason or "",
            "updated_at": now,
        }}
    elif action == TimesheetAction.unapprove.value:
        update = {
            "$set": {"status": TimesheetStatus.submitted.value, "is_locked": False, "updated_at": now},
            "$unset": {"approved_by": "", "approved_at": ""},
        }
        affected = project_ids_from_entries(timesheet.get("entries") or [])
    elif action == TimesheetAction.recalculate.value:
        totals = compute_totals(timesheet.get("entries") or [])
        update = {"$set": {**totals, "updated_at": now}}
    elif action == TimesheetAction.delete.value:
        await db["timesheets"].delete_one({"_id": ts_id})
        logger.info("Timesheet %s deleted by %s", ts_id, user.get("id"))
        return None, None, project_ids_from_entries(timesheet.get("entries") or [])

    await db["timesheets"].update_one({"_id": ts_id}, update)
    logger.info("Timesheet %s: %s by %s", ts_id, action, user.get("id"))
    if action == TimesheetAction.approve.value:
        await _notify_owner(db, timesheet, "timesheet_approved", {}, now)
    elif action == TimesheetAction.reject.value:
        await _notify_owner(db, timesheet, "timesheet_rejected", {"reason": reason or ""}, now)
    return await db["timesheets"].find_one({"_id": ts_id}), totals, affected


async def bulk_approve(
    db: AsyncIOMotorDatabase,
    ids: list[str],
    user: dict,
    now: Optional[datetime] = None,
) -> tuple[int, list[ObjectId]]:
    now = now or datetime.utcnow()
    require_roles(user, {ADMIN, MANAGER})
    ids = list(dict.fromkeys(i for i in ids if i))
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Timesheet IDs required")

    found: dict[str, dict] = {}
    async for ts in db["timesheets"].find({"_id": {"$in": ids}}, {"status": 1, "entries": 1}):
        found[ts["_id"]] = ts
    invalid = [i for i in ids if found.get(i, {}).get("status") != TimesheetStatus.submitted.value]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Some timesheets not submitted", "invalidIds": invalid},
        )

    approver = ObjectId(user["id"])
    for start in range(0, len(ids), BULK_APPROVE_BATCH_SIZE):
        batch = ids[start:start + BULK_APPROVE_BATCH_SIZE]
        await db["timesheets"].update_many(
            {"_id": {"$in": batch}},
            {"$set": {
                "status": TimesheetStatus.approved.value,
                "approved_by": approver,
                "approved_at": now,
                "is_locked": True,
                "updated_at": now,
            }},
        )
    logger.info("Bulk approved %d timesheets by %s", len(ids), user.get("id"))
    entries = [e for ts in found.values() for e in ts.get("entries") or []]
    return len(ids), project_ids_from_entries(entries)
