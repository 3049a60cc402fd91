"""Time reports built from timesheet entries.

Entries are flattened into rows carrying the names of their project,
client, task and user, then bucketed by one of ``GROUP_BY_CHOICES``.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from hourbook.services.time_accounting import format_decimal_hours, utilization


GROUP_BY_CHOICES = ("client", "project", "task", "user", "date")
DEFAULT_WEEKLY_CAPACITY = 40.0
UNKNOWN = "Unknown"


async def _names_by_id(db: AsyncIOMotorDatabase, collection: str, ids: Iterable[ObjectId], fields: dict) -> dict:
    ids = [i for i in set(ids) if i is not None]
    if not ids:
        return {}
    return {doc["_id"]: doc async for doc in db[collection].find({"_id": {"$in": ids}}, fields)}


def _user_name(user: Optional[dict]) -> str:
    if not user:
        return UNKNOWN
    name = f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()
    return name or user.get("email") or UNKNOWN


async def load_report_rows(
    db: AsyncIOMotorDatabase,
    start: datetime,
    end: datetime,
    user_ids: Optional[list[ObjectId]] = None,
    project_id: Optional[ObjectId] = None,
    client_id: Optional[ObjectId] = None,
) -> list[dict]:
    """Entries dated within ``[start, end]`` as flat, name-enriched rows."""
    q: dict = {"week_start": {"$lte": end}, "week_end": {"$gte": start}}
    if user_ids is not None:
        q["user_id"] = {"$in": user_ids}
    raw: list[tuple[dict, dict]] = []
    async for ts in db["timesheets"].find(q).sort("week_start", 1):
        for e in ts.get("entries") or []:
            if not (start <= e.get("date") <= end):
                continue
            if project_id is not None and e.get("project_id") != project_id:
                continue
            raw.append((ts, e))

    projects = await _names_by_id(db, "projects", (e.get("project_id") for _, e in raw), {"name": 1, "client_id": 1})
    clients = await _names_by_id(db, "clients", (p.get("client_id") for p in projects.values()), {"name": 1})
    tasks = await _names_by_id(db, "tasks", (e.get("task_id") for _, e in raw), {"name": 1})
    users = await _names_by_id(db, "users", (ts.get("user_id") for ts, _ in raw), {"first_name": 1, "last_name": 1, "email": 1, "weekly_capacity": 1})

    rows: list[dict] = []
    for ts, e in raw:
        project = projects.get(e.get("project_id")) or {}
        cid = project.get("client_id")
        if client_id is not None and cid != client_id:
            continue
        task = tasks.get(e.get("task_id")) if e.get("task_id") else None
        rows.append({
            "timesheet_id": ts["_id"],
            "status": ts.get("status"),
            "entry_key": e.get("key"),
            "date": e["date"],
            "user_id": ts.get("user_id"),
            "user_name": _user_name(users.get(ts.get("user_id"))),
            "weekly_capacity": (users.get(ts.get("user_id")) or {}).get("weekly_capacity"),
            "project_id": e.get("project_id"),
            "project_name": project.get("name") or UNKNOWN,
            "client_id": cid,
            "client_name": (clients.get(cid) or {}).get("name") or UNKNOWN,
            "task_id": e.get("task_id"),
            "task_name": task.get("name") if task else None,
            "hours": float(e.get("hours") or 0),
            "is_billable": bool(e.get("is_billable")),
            "notes": e.get("notes") or "",
        })
    return rows


def _group_key(row: dict, group_by: str) -> tuple:
    if group_by == "client":
        return row["client_id"], row["client_name"]
    if group_by == "project":
        return row["project_id"], row["project_name"]
    if group_by == "task":
        return row["task_id"], row["task_name"] or "No task"
    if group_by == "user":
        return row["user_id"], row["user_name"]
    if group_by == "date":
        day = row["date"].date().isoformat()
        return day, day
    raise ValueError(f"Unsupported groupBy: {group_by}")


def _sum(rows: list[dict]) -> dict:
    total = sum(r["hours"] for r in rows)
    billable = sum(r["hours"] for r in rows if r["is_billable"])
    return {
        "hours": format_decimal_hours(total),
        "billable_hours": format_decimal_hours(billable),
        "non_billable_hours": format_decimal_hours(total - billable),
        "entry_count": len(rows),
    }


def group_rows(rows: list[dict], group_by: str) -> list[dict]:
    """Bucket rows; dates come out chronologically, everything else by hours descending."""
    buckets: "OrderedDict[tuple, list[dict]]" = OrderedDict()
    for row in rows:
        buckets.setdefault(_group_key(row, group_by), []).append(row)
    groups = [
        {"key": str(key) if key is not None else None, "label": label, **_sum(members)}
        for (key, label), members in buckets.items()
    ]
    if group_by == "date":
        groups.sort(key=lambda g: g["label"])
    else:
        groups.sort(key=lambda g: (-g["hours"], g["label"]))
    return groups


def capacity_hours(rows: list[dict], start: datetime, end: datetime) -> float:
    weeks = ((end - start).days + 1) / 7
    capacities: dict = {}
    for row in rows:
        capacities[row["user_id"]] = float(row.get("weekly_capacity") or DEFAULT_WEEKLY_CAPACITY)
    return format_decimal_hours(sum(capacities.values()) * weeks)


def summarize(rows: list[dict], start: datetime, end: datetime) -> dict:
    totals = _sum(rows)
    capacity = capacity_hours(rows, start, end)
    return {
        **totals,
        "capacity_hours": capacity,
        "utilization": utilization(totals["hours"], capacity),
    }
