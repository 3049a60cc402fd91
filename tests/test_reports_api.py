from datetime import datetime

import pytest

from conftest import ADMIN_ID, ALICE_ID, BOB_ID, INTERNAL_TASK_ID, MANAGER_ID, OTHER_PROJECT_ID, add_entry, auth

from hourbook.services.reports import group_rows


WEEK = {"startDate": "2025-03-10", "endDate": "2025-03-16"}


@pytest.fixture
def logged_week(client, alice_sheet):
    add_entry(client, alice_sheet["id"], date="2025-03-11", hours=2)
    add_entry(client, alice_sheet["id"], date="2025-03-12", hours=2, projectId=str(OTHER_PROJECT_ID), taskId=str(INTERNAL_TASK_ID))
    bob_sheet = client.post("/api/v1/timesheets", json={"date": "2025-03-10"}, headers=auth(BOB_ID)).json()["id"]
    add_entry(client, bob_sheet, user_id=BOB_ID, date="2025-03-13", hours=3)


def _report(client, user_id, **params):
    return client.get("/api/v1/reports/time", params={**WEEK, **params}, headers=auth(user_id))


def test_group_by_project(client, logged_week):
    res = _report(client, ADMIN_ID, groupBy="project")
    assert res.status_code == 200
    data = res.json()
    assert [(g["label"], g["hours"], g["entryCount"]) for g in data["groups"]] == [
        ("Website Relaunch", 5.0, 2),
        ("Internal", 2.0, 1),
    ]
    assert data["groups"][1]["nonBillableHours"] == 2.0
    assert data["summary"]["hours"] == 7.0
    assert data["summary"]["billableHours"] == 5.0
    assert data["rows"] == []


def test_group_by_client_labels_projects_without_client(client, logged_week):
    groups = _report(client, ADMIN_ID, groupBy="client").json()["groups"]
    assert [(g["label"], g["hours"]) for g in groups] == [("Acme Corp", 5.0), ("Unknown", 2.0)]
    assert groups[1]["key"] is None


def test_group_by_date_is_chronological(client, logged_week):
    groups = _report(client, ADMIN_ID, groupBy="date").json()["groups"]
    assert [g["label"] for g in groups] == ["2025-03-11", "2025-03-12", "2025-03-13"]


def test_group_by_user_and_task(client, logged_week):
    users = _report(client, ADMIN_ID, groupBy="user").json()["groups"]
    assert [(g["label"], g["hours"]) for g in users] == [("Alice Smith", 4.0), ("Bob Brown", 3.0)]
    tasks = _report(client, ADMIN_ID, groupBy="task").json()["groups"]
    assert [(g["label"], g["hours"]) for g in tasks] == [("Development", 5.0), ("Admin", 2.0)]


def test_regular_user_only_sees_own_time(client, logged_week):
    data = _report(client, ALICE_ID, groupBy="user").json()
    assert [g["label"] for g in data["groups"]] == ["Alice Smith"]
    assert data["summary"]["capacityHours"] == 40.0
    assert data["summary"]["utilization"] == 10
    assert _report(client, ALICE_ID, userId=str(BOB_ID)).status_code == 403


def test_manager_sees_managed_users(client, logged_week):
    data = _report(client, MANAGER_ID, groupBy="user").json()
    assert {g["label"] for g in data["groups"]} == {"Alice Smith", "Bob Brown"}


def test_entries_outside_range_are_excluded(client, logged_week):
    data = client.get(
        "/api/v1/reports/time",
        params={"startDate": "2025-03-12", "endDate": "2025-03-12", "includeRows": True},
        headers=auth(ALICE_ID),
    ).json()
    assert data["summary"]["hours"] == 2.0
    assert [r["projectName"] for r in data["rows"]] == ["Internal"]
    assert data["rows"][0]["taskName"] == "Admin"
    assert data["rows"][0]["clientId"] is None


def test_bad_report_parameters(client):
    assert _report(client, ADMIN_ID, groupBy="team").status_code == 400
    backwards = client.get(
        "/api/v1/reports/time",
        params={"startDate": "2025-03-16", "endDate": "2025-03-10"},
        headers=auth(ADMIN_ID),
    )
    assert backwards.status_code == 400


def test_group_rows_without_database():
    rows = [
        {"date": datetime(2025, 3, 11), "hours": 1.0, "is_billable": True, "project_id": "p", "project_name": "P"},
        {"date": datetime(2025, 3, 11), "hours": 0.5, "is_billable": False, "project_id": "p", "project_name": "P"},
    ]
    assert group_rows(rows, "project") == [
        {"key": "p", "label": "P", "hours": 1.5, "billable_hours": 1.0, "non_billable_hours": 0.5, "entry_count": 2}
    ]
