"""Add, update and delete the entries embedded in a weekly timesheet.

Every mutation rewrites the full entries array together with freshly
computed totals in a single ``$set``, so the stored totals always match the
stored entries. Each operation returns the project ids it touched; callers
schedule the project rollup for those.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.rbac import require_entry_write
from hourbook.schemas.common import EntryAction
from hourbook.schemas.timesheet_schema import EntryIn, EntryUpdate
from hourbook.services.project_hours import project_ids_from_entries
from hourbook.services.time_accounting import as_day, compute_totals, hours_to_decimal, to_naive_utc
from hourbook.services.timer import (
    TimerInvariantError,
    append_timer_entry,
    check_entry_invariants,
    repair_running_entries,
    start_entry,
    stop_timer,
)


logger = logging.getLogger(__name__)


def parse_object_id(value: str, field: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field}") from exc


async def load_timesheet(db: AsyncIOMotorDatabase, timesheet_id: str) -> dict:
    timesheet = await db["timesheets"].find_one({"_id": timesheet_id})
    if not timesheet:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timesheet not found")
    return timesheet


async def resolve_task_billable(db: AsyncIOMotorDatabase, task_id: Optional[ObjectId]) -> bool:
    """Billable flag of the task; entries default to billable when unknown."""
    if task_id is None:
        return True
    try:
        task = await db["tasks"].find_one({"_id": task_id}, {"is_billable": 1})
    except Exception:
        logger.warning("Task lookup failed for %s; defaulting entry to billable", task_id, exc_info=True)
        return True
    if not task:
        return True
    return task.get("is_billable", True) is not False


def _require_in_week(timesheet: dict, day: datetime) -> None:
    if day < timesheet["week_start"] or day > timesheet["week_end"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Date outside week range")


def _parse_hours(value) -> float:
    try:
        hours = hours_to_decimal(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid hours") from exc
    if hours < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Hours cannot be negative")
    return hours


async def _persist_entries(db: AsyncIOMotorDatabase, timesheet_id: str, entries: list[dict], now: datetime) -> dict:
    try:
        check_entry_invariants(entries)
    except TimerInvariantError as exc:
        logger.error("Refusing to save entries of %s: %s", timesheet_id, exc)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Timesheet entries are inconsistent") from exc
    totals = compute_totals(entries)
    await db["timesheets"].update_one(
        {"_id": timesheet_id},
        {"$set": {"entries": entries, **totals, "updated_at": now}},
    )
    return totals


def _changed_entries(before: list[dict], after: list[dict]) -> list[dict]:
    by_key = {e.get("key"): e for e in before}
    return [e for e in after if by_key.get(e.get("key")) != e]


async def add_entry(
    db: AsyncIOMotorDatabase,
    timesheet_id: str,
    payload: EntryIn,
    user: dict,
    now: Optional[datetime] = None,
) -> tuple[dict, dict, list[ObjectId]]:
    now = now or datetime.utcnow()
    if not payload.project_id or payload.date is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project and date required")
    project_oid = parse_object_id(payload.project_id, "projectId")
    task_oid = parse_object_id(payload.task_id, "taskId") if payload.task_id else None

    timesheet = await load_timesheet(db, timesheet_id)
    require_entry_write(user, timesheet)
    day = as_day(payload.date)
    _require_in_week(timesheet, day)
    hours = 0.0 if payload.is_timer else _parse_hours(payload.hours or 0)

    entry = {
        "key": str(uuid4()),
        "date": day,
        "project_id": project_oid,
        "task_id": task_oid,
        "hours": hours,
        "notes": payload.notes or "",
        "is_billable": await resolve_task_billable(db, task_oid),
        "is_running": False,
        "start_time": to_naive_utc(payload.start_time),
        "end_time": None,
        "created_at": now,
        "updated_at": now,
    }
    stored = list(timesheet.get("entries") or [])
    before = repair_running_entries(stored, now)
    if payload.is_timer:
        entries = append_timer_entry(before, entry, now)
    else:
        entries = before + [entry]
    totals = await _persist_entries(db, timesheet_id, entries, now)
    logger.info("Entry %s added to %s by %s", entry["key"], timesheet_id, user.get("id"))
    return entries[-1], totals, project_ids_from_entries(_changed_entries(stored, entries))


async def update_entry(
    db: AsyncIOMotorDatabase,
    timesheet_id: str,
    payload: EntryUpdate,
    user: dict,
    now: Optional[datetime] = None,
) -> tuple[dict, dict, list[ObjectId]]:
    now = now or datetime.utcnow()
    if not payload.entry_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Entry key required")
    fields = payload.model_fields_set

    timesheet = await load_timesheet(db, timesheet_id)
    require_entry_write(user, timesheet)
    stored = list(timesheet.get("entries") or [])
    before = repair_running_entries(stored, now)
    idx = next((i for i, e in enumerate(before) if e.get("key") == payload.entry_key), None)
    if idx is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    existing = before[idx]

    if payload.action == EntryAction.stop_timer:
        entries = stop_timer(before, payload.entry_key, now)
    elif payload.action == EntryAction.start_timer:
        entries = start_entry(before, payload.entry_key, now)
    else:
        patch: dict = {}
        if "project_id" in fields and payload.project_id:
            patch["project_id"] = parse_object_id(payload.project_id, "projectId")
        if "task_id" in fields:
            patch["task_id"] = parse_object_id(payload.task_id, "taskId") if payload.task_id else None
        if "date" in fields and payload.date is not None:
            day = as_day(payload.date)
            _require_in_week(timesheet, day)
            patch["date"] = day
        if "hours" in fields and payload.hours is not None:
            patch["hours"] = _parse_hours(payload.hours)
        if "notes" in fields:
            patch["notes"] = payload.notes or ""
        if "is_billable" in fields and payload.is_billable is not None:
            patch["is_billable"] = payload.is_billable
        entries = list(before)
        entries[idx] = {**existing, **patch, "updated_at": now}

    totals = await _persist_entries(db, timesheet_id, entries, now)
    updated = next(e for e in entries if e.get("key") == payload.entry_key)
    logger.info("Entry %s updated in %s by %s", payload.entry_key, timesheet_id, user.get("id"))
    # Old project first so a moved entry refreshes both rollups
    affected = project_ids_from_entries([existing] + _changed_entries(stored, entries))
    return updated, totals, affected


async def delete_entry(
    db: AsyncIOMotorDatabase,
    timesheet_id: str,
    entry_key: Optional[str],
    user: dict,
    now: Optional[datetime] = None,
) -> tuple[dict, list[ObjectId]]:
    now = now or datetime.utcnow()
    if not entry_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Entry key required")
    timesheet = await load_timesheet(db, timesheet_id)
    require_entry_write(user, timesheet)
    stored = list(timesheet.get("entries") or [])
    before = repair_running_entries(stored, now)
    removed = next((e for e in before if e.get("key") == entry_key), None)
    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    entries = [e for e in before if e.get("key") != entry_key]
    totals = await _persist_entries(db, timesheet_id, entries, now)
    logger.info("Entry %s deleted from %s by %s", entry_key, timesheet_id, user.get("id"))
    return totals, project_ids_from_entries([removed] + _changed_entries(stored, entries))
