from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.rbac import can_view_user, is_admin, is_admin_like, is_manager
from hourbook.schemas.common import TimesheetStatus
from hourbook.services.time_accounting import as_day, timesheet_id, week_bucket
from hourbook.services.timesheet_entries import parse_object_id


LIST_LIMIT = 500
PROJECT_MANAGER_ROLE = "Project Manager"


def resolve_target_user(user: dict, user_id: Optional[str]) -> ObjectId:
    if not can_view_user(user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return parse_object_id(user_id or user["id"], "userId")


async def list_timesheets(
    db: AsyncIOMotorDatabase,
    user: dict,
    *,
    week_start: Optional[str] = None,
    user_id: Optional[str] = None,
    for_copy: bool = False,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status_filter: Optional[TimesheetStatus] = None,
    before_week: Optional[str] = None,
    today: Optional[datetime] = None,
) -> list[dict]:
    try:
        week = week_bucket(week_start).week_start if week_start else None
        before = week_bucket(before_week).week_start if before_week else None
        start = as_day(start_date) if start_date else None
        end = as_day(end_date) if end_date else None
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date") from exc

    if status_filter is not None and is_admin_like(user):
        # Approval queues across users
        q: dict = {"status": status_filter.value}
        if user_id:
            q["user_id"] = parse_object_id(user_id, "userId")
        if week is not None:
            q["week_start"] = week
        elif before is not None:
            q["week_start"] = {"$lt": before}
        cursor = db["timesheets"].find(q).sort([("week_start", -1), ("submitted_at", 1)]).limit(LIST_LIMIT)
        return [ts async for ts in cursor]

    target = resolve_target_user(user, user_id)
    if start is not None and end is not None:
        q = {"user_id": target, "week_start": {"$lte": end}, "week_end": {"$gte": start}}
        if status_filter is not None:
            q["status"] = status_filter.value
        cursor = db["timesheets"].find(q).sort("week_start", 1).limit(LIST_LIMIT)
        return [ts async for ts in cursor]

    if week is not None:
        ts = await db["timesheets"].find_one({"_id": timesheet_id(target, week)})
        if not ts:
            return []
        # Copying last week's rows works from any status; otherwise only approved weeks are shared
        if not for_copy and ts.get("status") != TimesheetStatus.approved.value:
            return []
        return [ts]

    ts = await db["timesheets"].find_one({"_id": timesheet_id(target, today or datetime.utcnow())})
    return [ts] if ts else []


async def managed_user_ids(db: AsyncIOMotorDatabase, manager_id: ObjectId) -> list[ObjectId]:
    """Members of teams the manager runs plus users on projects they manage."""
    ids: list[ObjectId] = []
    async for team in db["teams"].find({"manager_id": manager_id, "is_active": {"$ne": False}}, {"members": 1}):
        for member in team.get("members") or []:
            if isinstance(member, ObjectId) and member not in ids:
                ids.append(member)
    project_q = {"assigned_users": {"$elemMatch": {"user_id": manager_id, "role": PROJECT_MANAGER_ROLE}}}
    async for project in db["projects"].find(project_q, {"assigned_users": 1}):
        for assigned in project.get("assigned_users") or []:
            uid = assigned.get("user_id")
            if isinstance(uid, ObjectId) and uid not in ids:
                ids.append(uid)
    return ids


async def pending_timesheets(db: AsyncIOMotorDatabase, user: dict) -> list[dict]:
    q: dict = {"status": TimesheetStatus.submitted.value}
    if not is_admin(user):
        if not is_manager(user):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        members = await managed_user_ids(db, ObjectId(user["id"]))
        if not members:
            return []
        q["user_id"] = {"$in": members}
    cursor = db["timesheets"].find(q).sort("submitted_at", 1).limit(LIST_LIMIT)
    return [ts async for ts in cursor]


async def find_running_timer(db: AsyncIOMotorDatabase, user_id: ObjectId) -> tuple[Optional[dict], Optional[dict]]:
    ts = await db["timesheets"].find_one({"user_id": user_id, "has_running_timer": True})
    if not ts:
        return None, None
    entry = next((e for e in ts.get("entries") or [] if e.get("is_running") is True), None)
    return ts, entry
