from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.core.rbac import is_admin, is_manager
from hourbook.core.security import get_current_user
from hourbook.db.mongo import get_mongo_db
from hourbook.schemas.report_schema import ReportGroupOut, ReportRowOut, ReportSummaryOut, TimeReportOut
from hourbook.services import reports
from hourbook.services.time_accounting import as_day, week_bucket
from hourbook.services.timesheet_entries import parse_object_id
from hourbook.services.timesheet_queries import managed_user_ids, resolve_target_user


router = APIRouter(prefix="/reports", tags=["reports"])


async def _visible_user_ids(db: AsyncIOMotorDatabase, user: dict, user_id: Optional[str]) -> Optional[list[ObjectId]]:
    """None means every user; admins only."""
    if user_id:
        return [resolve_target_user(user, user_id)]
    me = ObjectId(user["id"])
    if is_admin(user):
        return None
    if is_manager(user):
        return [me] + [m for m in await managed_user_ids(db, me) if m != me]
    return [me]


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


@router.get("/time", response_model=TimeReportOut)
async def time_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    group_by: str = Query("project", alias="groupBy"),
    user_id: Optional[str] = Query(None, alias="userId"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    include_rows: bool = Query(False, alias="includeRows"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if group_by not in reports.GROUP_BY_CHOICES:
        raise HTTPException(status_code=400, detail=f"groupBy must be one of {', '.join(reports.GROUP_BY_CHOICES)}")
    try:
        # Defaults to the current week
        start = as_day(start_date) if start_date else week_bucket(datetime.utcnow()).week_start
        end = as_day(end_date) if end_date else start + timedelta(days=6)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date") from exc
    if end < start:
        raise HTTPException(status_code=400, detail="endDate must not be before startDate")

    rows = await reports.load_report_rows(
        db,
        start,
        end,
        user_ids=await _visible_user_ids(db, current_user, user_id),
        project_id=parse_object_id(project_id, "projectId") if project_id else None,
        client_id=parse_object_id(client_id, "clientId") if client_id else None,
    )
    return TimeReportOut(
        start_date=start.date(),
        end_date=end.date(),
        group_by=group_by,
        summary=ReportSummaryOut(**reports.summarize(rows, start, end)),
        groups=[ReportGroupOut(**g) for g in reports.group_rows(rows, group_by)],
        rows=[
            ReportRowOut(
                timesheet_id=r["timesheet_id"],
                entry_key=r["entry_key"],
                date=r["date"].date(),
                status=r["status"],
                user_id=str(r["user_id"]),
                user_name=r["user_name"],
                project_id=str(r["project_id"]),
                project_name=r["project_name"],
                client_id=_str_or_none(r["client_id"]),
                client_name=r["client_name"],
                task_id=_str_or_none(r["task_id"]),
                task_name=r["task_name"],
                hours=r["hours"],
                is_billable=r["is_billable"],
                notes=r["notes"],
            )
            for r in rows
        ] if include_rows else [],
    )
