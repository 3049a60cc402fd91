from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from bson import ObjectId
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, Query, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.rbac import require_timesheet_access
from hourbook.core.security import get_current_user
from hourbook.db.mongo import get_mongo_db
from hourbook.schemas.common import TimesheetAction, TimesheetStatus
from hourbook.schemas.timesheet_schema import (
    ActionResultOut,
    BulkApproveIn,
    BulkApproveOut,
    EntryIn,
    EntryOut,
    EntryResultOut,
    EntryUpdate,
    RefOut,
    RunningTimerOut,
    TimesheetActionIn,
    TimesheetCreateIn,
    TimesheetListOut,
    TimesheetOut,
    TotalsOut,
    UserRefOut,
)
from hourbook.services import timesheet_entries, timesheet_lifecycle, timesheet_queries
from hourbook.services.project_hours import recalculate_projects_in_background
from hourbook.services.time_accounting import compute_totals


router = APIRouter(prefix="/timesheets", tags=["timesheets"])

# Deleting a timesheet goes through DELETE only
PATCH_ACTIONS = {
    TimesheetAction.submit.value,
    TimesheetAction.approve.value,
    TimesheetAction.reject.value,
    TimesheetAction.unapprove.value,
    TimesheetAction.recalculate.value,
}


def _schedule_recompute(background_tasks: BackgroundTasks, db: AsyncIOMotorDatabase, project_ids: list[ObjectId], reason: str) -> None:
    if project_ids:
        background_tasks.add_task(recalculate_projects_in_background, db, project_ids, reason)


async def _lookup(db: AsyncIOMotorDatabase, collection: str, ids: Iterable, fields: dict) -> dict:
    ids = [i for i in set(ids) if isinstance(i, ObjectId)]
    if not ids:
        return {}
    return {d["_id"]: d async for d in db[collection].find({"_id": {"$in": ids}}, fields)}


def _ref(doc: Optional[dict], oid: Optional[ObjectId]) -> Optional[RefOut]:
    if oid is None:
        return None
    doc = doc or {}
    return RefOut(id=str(oid), name=doc.get("name"), code=doc.get("code"))


def _entry_out(e: dict, projects: Optional[dict] = None, tasks: Optional[dict] = None) -> EntryOut:
    projects = projects or {}
    tasks = tasks or {}
    task_id = e.get("task_id")
    return EntryOut(
        key=e["key"],
        date=e["date"].date(),
        project_id=str(e["project_id"]),
        task_id=str(task_id) if task_id else None,
        project=_ref(projects.get(e["project_id"]), e["project_id"]) if projects else None,
        task=_ref(tasks.get(task_id), task_id) if tasks and task_id else None,
        hours=float(e.get("hours") or 0),
        notes=e.get("notes") or "",
        is_billable=bool(e.get("is_billable")),
        is_running=e.get("is_running") is True,
        start_time=e.get("start_time"),
        end_time=e.get("end_time"),
        created_at=e.get("created_at"),
        updated_at=e.get("updated_at"),
    )


def _totals_out(doc: dict) -> TotalsOut:
    totals = {k: doc.get(k) for k in ("total_hours", "billable_hours", "non_billable_hours", "has_running_timer")}
    if any(v is None for v in totals.values()):
        totals = compute_totals(doc.get("entries") or [])
    return TotalsOut(**totals)


async def _timesheets_out(db: AsyncIOMotorDatabase, timesheets: list[dict]) -> list[TimesheetOut]:
    entries = [e for ts in timesheets for e in ts.get("entries") or []]
    projects = await _lookup(db, "projects", (e.get("project_id") for e in entries), {"name": 1, "code": 1})
    tasks = await _lookup(db, "tasks", (e.get("task_id") for e in entries), {"name": 1})
    users = await _lookup(db, "users", (ts.get("user_id") for ts in timesheets), {"first_name": 1, "last_name": 1, "email": 1})
    out: list[TimesheetOut] = []
    for ts in timesheets:
        owner = users.get(ts.get("user_id")) or {}
        approved_by = ts.get("approved_by")
        out.append(TimesheetOut(
            id=ts["_id"],
            user_id=str(ts["user_id"]),
            user=UserRefOut(
                id=str(ts["user_id"]),
                first_name=owner.get("first_name"),
                last_name=owner.get("last_name"),
                email=owner.get("email"),
            ),
            week_start=ts["week_start"].date(),
            week_end=ts["week_end"].date(),
            year=ts["year"],
            week_number=ts["week_number"],
            status=ts.get("status", TimesheetStatus.unsubmitted.value),
            entries=[_entry_out(e, projects, tasks) for e in ts.get("entries") or []],
            **_totals_out(ts).model_dump(),
            is_locked=bool(ts.get("is_locked")),
            submitted_at=ts.get("submitted_at"),
            approved_by=str(approved_by) if approved_by else None,
            approved_at=ts.get("approved_at"),
            rejected_at=ts.get("rejected_at"),
            rejection_reason=ts.get("rejection_reason"),
            created_at=ts.get("created_at"),
            updated_at=ts.get("updated_at"),
        ))
    return out


async def _timesheet_out(db: AsyncIOMotorDatabase, ts: dict) -> TimesheetOut:
    return (await _timesheets_out(db, [ts]))[0]


@router.get("", response_model=TimesheetListOut)
async def list_timesheets(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    user_id: Optional[str] = Query(None, alias="userId"),
    for_copy: bool = Query(False, alias="forCopy"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    status_filter: Optional[TimesheetStatus] = Query(None, alias="status"),
    before_week: Optional[str] = Query(None, alias="beforeWeek"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    docs = await timesheet_queries.list_timesheets(
        db,
        current_user,
        week_start=week_start,
        user_id=user_id,
        for_copy=for_copy,
        start_date=start_date,
        end_date=end_date,
        status_filter=status_filter,
        before_week=before_week,
    )
    return TimesheetListOut(timesheets=await _timesheets_out(db, docs))


@router.post("", response_model=TimesheetOut, status_code=status.HTTP_201_CREATED)
async def create_timesheet(
    response: Response,
    payload: Optional[TimesheetCreateIn] = None,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    payload = payload or TimesheetCreateIn()
    target = timesheet_queries.resolve_target_user(current_user, payload.user_id)
    if str(target) != current_user["id"] and not await db["users"].find_one({"_id": target}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="User not found")
    day = payload.date or datetime.utcnow()
    doc, created = await timesheet_lifecycle.get_or_create_timesheet(db, target, day)
    if not created:
        response.status_code = status.HTTP_200_OK
    return await _timesheet_out(db, doc)


@router.get("/pending", response_model=TimesheetListOut)
async def list_pending(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    docs = await timesheet_queries.pending_timesheets(db, current_user)
    return TimesheetListOut(timesheets=await _timesheets_out(db, docs))


@router.get("/running-timer", response_model=RunningTimerOut)
async def running_timer(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    target = timesheet_queries.resolve_target_user(current_user, user_id)
    ts, entry = await timesheet_queries.find_running_timer(db, target)
    if not ts or not entry:
        return RunningTimerOut()
    projects = await _lookup(db, "projects", [entry.get("project_id")], {"name": 1, "code": 1})
    tasks = await _lookup(db, "tasks", [entry.get("task_id")], {"name": 1})
    return RunningTimerOut(
        timesheet_id=ts["_id"],
        week_start=ts["week_start"].date(),
        running_entry=_entry_out(entry, projects, tasks),
    )


@router.patch("/bulk-approve", response_model=BulkApproveOut)
async def bulk_approve(
    payload: BulkApproveIn,
    background_tasks: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    count, project_ids = await timesheet_lifecycle.bulk_approve(db, payload.timesheet_ids, current_user)
    _schedule_recompute(background_tasks, db, project_ids, "bulk approve")
    return BulkApproveOut(approved_count=count)


@router.get("/{timesheet_id}", response_model=TimesheetOut)
async def get_timesheet(
    timesheet_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    ts = await timesheet_entries.load_timesheet(db, timesheet_id)
    require_timesheet_access(current_user, ts)
    return await _timesheet_out(db, ts)


@router.patch("/{timesheet_id}", response_model=ActionResultOut)
async def timesheet_action(
    payload: TimesheetActionIn,
    background_tasks: BackgroundTasks,
    timesheet_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if payload.action not in PATCH_ACTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    ts, totals, project_ids = await timesheet_lifecycle.apply_action(
        db, timesheet_id, payload.action, current_user, reason=payload.reason
    )
    _schedule_recompute(background_tasks, db, project_ids, payload.action)
    return ActionResultOut(
        timesheet=await _timesheet_out(db, ts) if ts else None,
        totals=TotalsOut(**totals) if totals else None,
    )


@router.delete("/{timesheet_id}", response_model=ActionResultOut)
async def delete_timesheet(
    background_tasks: BackgroundTasks,
    timesheet_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    _, _, project_ids = await timesheet_lifecycle.apply_action(db, timesheet_id, "delete", current_user)
    _schedule_recompute(background_tasks, db, project_ids, "delete timesheet")
    return ActionResultOut()


# ---------------------- Entries ----------------------


@router.post("/{timesheet_id}/entries", response_model=EntryResultOut, status_code=status.HTTP_201_CREATED)
async def add_entry(
    payload: EntryIn,
    background_tasks: BackgroundTasks,
    timesheet_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    entry, totals, project_ids = await timesheet_entries.add_entry(db, timesheet_id, payload, current_user)
    _schedule_recompute(background_tasks, db, project_ids, "add entry")
    return EntryResultOut(entry=_entry_out(entry), totals=TotalsOut(**totals))


@router.patch("/{timesheet_id}/entries", response_model=EntryResultOut)
async def update_entry(
    payload: EntryUpdate,
    background_tasks: BackgroundTasks,
    timesheet_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    entry, totals, project_ids = await timesheet_entries.update_entry(db, timesheet_id, payload, current_user)
    _schedule_recompute(background_tasks, db, project_ids, "update entry")
    return EntryResultOut(entry=_entry_out(entry), totals=TotalsOut(**totals))


@router.delete("/{timesheet_id}/entries", response_model=EntryResultOut)
async def delete_entry(
    background_tasks: BackgroundTasks,
    timesheet_id: str = Path(...),
    entry_key: Optional[str] = Query(None, alias="entryKey"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    totals, project_ids = await timesheet_entries.delete_entry(db, timesheet_id, entry_key, current_user)
    _schedule_recompute(background_tasks, db, project_ids, "delete entry")
    return EntryResultOut(totals=TotalsOut(**totals))
