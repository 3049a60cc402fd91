from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from bson import ObjectId

from hourbook.core.logging import setup_logging
from hourbook.db.mongo import get_mongo_db, close_mongo_client
from hourbook.db.mongo_indexes import ensure_indexes
from hourbook.services.timesheet_lifecycle import get_or_create_timesheet


logger = logging.getLogger("seed_mongo")

# Stable ids keep the seed idempotent
ADMIN_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a1")
MANAGER_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a2")
ALICE_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a3")
BOB_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a4")
CLIENT_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0c1")
PROJECT_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0d1")
INTERNAL_PROJECT_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0d2")
DEV_TASK_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0e1")
ADMIN_TASK_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0e2")


async def seed_users(db):
    now = datetime.utcnow()
    users = [
        (ADMIN_ID, "admin@hourbook.local", "Admin", "User", "admin"),
        (MANAGER_ID, "manager@hourbook.local", "Mandy", "Manager", "manager"),
        (ALICE_ID, "alice@hourbook.local", "Alice", "Smith", "user"),
        (BOB_ID, "bob@hourbook.local", "Bob", "Brown", "user"),
    ]
    for uid, email, first, last, role in users:
        await db["users"].update_one(
            {"email": email},
            {"$setOnInsert": {
                "_id": uid,
                "email": email,
                "first_name": first,
                "last_name": last,
                "role": role,
                "is_active": True,
                "is_archived": False,
                "weekly_capacity": 40,
                "notification": {"weekly_team_reminders": True},
                "created_at": now,
                "updated_at": now,
            }},
            upsert=True,
        )
    await db["teams"].update_one(
        {"manager_id": MANAGER_ID, "name": "Delivery"},
        {"$setOnInsert": {"is_active": True, "members": [ALICE_ID, BOB_ID], "created_at": now}},
        upsert=True,
    )


async def seed_clients_and_projects(db):
    now = datetime.utcnow()
    await db["clients"].update_one(
        {"_id": CLIENT_ID},
        {"$setOnInsert": {"name": "Acme Corp", "is_active": True, "created_at": now}},
        upsert=True,
    )
    projects = [
        (PROJECT_ID, "Website Relaunch", "ACME-WEB", CLIENT_ID),
        (INTERNAL_PROJECT_ID, "Internal", "INT", None),
    ]
    for pid, name, code, client_id in projects:
        await db["projects"].update_one(
            {"_id": pid},
            {"$setOnInsert": {
                "name": name,
                "code": code,
                "client_id": client_id,
                "is_active": True,
                "assigned_users": [
                    {"user_id": MANAGER_ID, "role": "Project Manager"},
                    {"user_id": ALICE_ID, "role": "Member"},
                    {"user_id": BOB_ID, "role": "Member"},
                ],
                "timesheet_hours": 0.0,
                "timesheet_approved_hours": 0.0,
                "timesheet_billable_hours": 0.0,
                "created_at": now,
            }},
            upsert=True,
        )
    tasks = [
        (DEV_TASK_ID, "Development", True),
        (ADMIN_TASK_ID, "Administration", False),
    ]
    for tid, name, billable in tasks:
        await db["tasks"].update_one(
            {"_id": tid},
            {"$setOnInsert": {"name": name, "is_billable": billable, "is_active": True, "created_at": now}},
            upsert=True,
        )


async def seed_timesheets(db):
    today = datetime.utcnow()
    for uid in (ALICE_ID, BOB_ID):
        await get_or_create_timesheet(db, uid, today)


async def main():
    setup_logging()
    db = get_mongo_db()
    # Ensure indexes before inserting
    await ensure_indexes(db)

    await seed_users(db)
    await seed_clients_and_projects(db)
    await seed_timesheets(db)

    logger.info("MongoDB seed completed.")
    close_mongo_client()


if __name__ == "__main__":
    asyncio.run(main())
