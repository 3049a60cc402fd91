"""
Pytest fixtures: an in-memory Motor database injected into the app and
bearer tokens for a small cast of users.
"""

import asyncio
from datetime import datetime

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from hourbook.core.security import create_jwt
from hourbook.db.mongo import get_mongo_db
from main import app


ADMIN_ID = ObjectId("65a000000000000000000001")
MANAGER_ID = ObjectId("65a000000000000000000002")
ALICE_ID = ObjectId("65a000000000000000000003")  # on the manager's team
BOB_ID = ObjectId("65a000000000000000000004")  # on a project the manager runs
CAROL_ID = ObjectId("65a000000000000000000005")  # unmanaged

CLIENT_ID = ObjectId("65b000000000000000000001")
PROJECT_ID = ObjectId("65c000000000000000000001")
OTHER_PROJECT_ID = ObjectId("65c000000000000000000002")
BILLABLE_TASK_ID = ObjectId("65d000000000000000000001")
INTERNAL_TASK_ID = ObjectId("65d000000000000000000002")

# Monday of ISO week 11 of 2025
WEEK_START = datetime(2025, 3, 10)


def run(coro):
    """Drive a coroutine on a private loop; leaves the current event loop alone."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def auth(user_id: ObjectId) -> dict:
    return {"Authorization": f"Bearer {create_jwt({'sub': str(user_id)})}"}


def sheet_id(user_id: ObjectId, week: str = "2025-W11") -> str:
    return f"timesheet-{user_id}-{week}"


async def _seed(db) -> None:
    now = datetime(2025, 3, 1)
    people = [
        (ADMIN_ID, "admin@example.com", "Ada", "Admin", "admin"),
        (MANAGER_ID, "manager@example.com", "Max", "Manager", "manager"),
        (ALICE_ID, "alice@example.com", "Alice", "Smith", "user"),
        (BOB_ID, "bob@example.com", "Bob", "Brown", "user"),
        (CAROL_ID, "carol@example.com", "Carol", "Jones", "user"),
    ]
    await db["users"].insert_many([
        {
            "_id": uid,
            "email": email,
            "first_name": first,
            "last_name": last,
            "role": role,
            "is_active": True,
            "is_archived": False,
            "created_at": now,
        }
        for uid, email, first, last, role in people
    ])
    await db["teams"].insert_one({"name": "Delivery", "manager_id": MANAGER_ID, "is_active": True, "members": [ALICE_ID]})
    await db["clients"].insert_one({"_id": CLIENT_ID, "name": "Acme Corp"})
    await db["projects"].insert_many([
        {
            "_id": PROJECT_ID,
            "name": "Website Relaunch",
            "code": "ACME-WEB",
            "client_id": CLIENT_ID,
            "is_active": True,
            "assigned_users": [
                {"user_id": MANAGER_ID, "role": "Project Manager"},
                {"user_id": BOB_ID, "role": "Member"},
            ],
        },
        {"_id": OTHER_PROJECT_ID, "name": "Internal", "code": "INT", "client_id": None, "is_active": True, "assigned_users": []},
    ])
    await db["tasks"].insert_many([
        {"_id": BILLABLE_TASK_ID, "name": "Development", "is_billable": True},
        {"_id": INTERNAL_TASK_ID, "name": "Admin", "is_billable": False},
    ])


@pytest.fixture
def db():
    database = AsyncMongoMockClient()["hourbook_test"]
    run(_seed(database))
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_mongo_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def alice_sheet(client):
    """Alice's timesheet for WEEK_START, created through the API."""
    res = client.post("/api/v1/timesheets", json={"date": "2025-03-12"}, headers=auth(ALICE_ID))
    assert res.status_code == 201
    return res.json()


def add_entry(client, ts_id: str, user_id=ALICE_ID, **overrides):
    body = {"projectId": str(PROJECT_ID), "taskId": str(BILLABLE_TASK_ID), "date": "2025-03-11", "hours": 2}
    body.update(overrides)
    return client.post(f"/api/v1/timesheets/{ts_id}/entries", json=body, headers=auth(user_id))


def get_doc(db, collection: str, doc_id):
    return run(db[collection].find_one({"_id": doc_id}))
