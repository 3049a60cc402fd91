from motor.motor_asyncio import AsyncIOMotorDatabase
from hourbook.db.mongo import get_mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    users = db["users"]
    await users.create_index([("email", 1)], unique=True, name="uniq_email")
    await users.create_index([("is_active", 1), ("is_archived", 1)], name="idx_user_active")

    timesheets = db["timesheets"]
    # One timesheet per user and week; _id is derived from the same pair
    await timesheets.create_index([("user_id", 1), ("week_start", 1)], unique=True, name="uniq_user_week")
    await timesheets.create_index([("status", 1), ("submitted_at", 1)], name="idx_ts_status_submitted")
    await timesheets.create_index([("status", 1), ("week_start", -1)], name="idx_ts_status_week")
    await timesheets.create_index([("user_id", 1), ("has_running_timer", 1)], name="idx_ts_running_by_user")
    # Project rollups scan timesheets by referenced project
    await timesheets.create_index([("entries.project_id", 1)], name="idx_ts_entry_project")

    projects = db["projects"]
    await projects.create_index([("client_id", 1)], name="idx_project_client")
    await projects.create_index([("assigned_users.user_id", 1)], name="idx_project_assigned_user")

    teams = db["teams"]
    await teams.create_index([("manager_id", 1), ("is_active", 1)], name="idx_team_manager_active")

    notifications = db["notifications"]
    await notifications.create_index([("user_id", 1), ("read", 1), ("created_at", -1)], name="idx_notif_user_read_created")
