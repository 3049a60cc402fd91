from conftest import ADMIN_ID, ALICE_ID, BOB_ID, CAROL_ID, MANAGER_ID, add_entry, auth, sheet_id


def _create(client, user_id, day="2025-03-10"):
    return client.post("/api/v1/timesheets", json={"date": day}, headers=auth(user_id)).json()["id"]


def _submit(client, ts_id, user_id):
    client.patch(f"/api/v1/timesheets/{ts_id}", json={"action": "submit"}, headers=auth(user_id))


def test_get_timesheet_by_id(client, alice_sheet):
    add_entry(client, alice_sheet["id"], hours=1)
    res = client.get(f"/api/v1/timesheets/{alice_sheet['id']}", headers=auth(ALICE_ID))
    assert res.status_code == 200
    entry = res.json()["entries"][0]
    assert entry["project"]["name"] == "Website Relaunch"
    assert entry["project"]["code"] == "ACME-WEB"
    assert entry["task"]["name"] == "Development"
    assert entry["date"] == "2025-03-11"


def test_get_timesheet_of_someone_else(client, alice_sheet):
    assert client.get(f"/api/v1/timesheets/{alice_sheet['id']}", headers=auth(CAROL_ID)).status_code == 403
    assert client.get(f"/api/v1/timesheets/{alice_sheet['id']}", headers=auth(MANAGER_ID)).status_code == 200
    assert client.get("/api/v1/timesheets/timesheet-nope", headers=auth(ADMIN_ID)).status_code == 404


def test_week_lookup_returns_only_approved_unless_copying(client, alice_sheet):
    params = {"weekStart": "2025-03-10"}
    assert client.get("/api/v1/timesheets", params=params, headers=auth(ALICE_ID)).json() == {"timesheets": []}

    copy = client.get("/api/v1/timesheets", params={**params, "forCopy": 1}, headers=auth(ALICE_ID)).json()
    assert [t["id"] for t in copy["timesheets"]] == [alice_sheet["id"]]

    _submit(client, alice_sheet["id"], ALICE_ID)
    client.patch(f"/api/v1/timesheets/{alice_sheet['id']}", json={"action": "approve"}, headers=auth(ADMIN_ID))
    approved = client.get("/api/v1/timesheets", params=params, headers=auth(ALICE_ID)).json()
    assert approved["timesheets"][0]["status"] == "approved"


def test_date_range_listing(client):
    first = _create(client, ALICE_ID, "2025-03-10")
    second = _create(client, ALICE_ID, "2025-03-17")
    _create(client, ALICE_ID, "2025-04-07")
    res = client.get(
        "/api/v1/timesheets",
        params={"startDate": "2025-03-12", "endDate": "2025-03-20"},
        headers=auth(ALICE_ID),
    )
    assert [t["id"] for t in res.json()["timesheets"]] == [first, second]
    assert second == sheet_id(ALICE_ID, "2025-W12")


def test_non_admin_cannot_list_other_users(client):
    res = client.get("/api/v1/timesheets", params={"userId": str(BOB_ID)}, headers=auth(ALICE_ID))
    assert (res.status_code, res.json()["detail"]) == (403, "Forbidden")


def test_status_listing_for_approvers(client):
    alice = _create(client, ALICE_ID)
    _create(client, BOB_ID)
    _submit(client, alice, ALICE_ID)
    res = client.get("/api/v1/timesheets", params={"status": "submitted"}, headers=auth(ADMIN_ID))
    assert [t["id"] for t in res.json()["timesheets"]] == [alice]

    before = client.get(
        "/api/v1/timesheets",
        params={"status": "submitted", "beforeWeek": "2025-03-10"},
        headers=auth(ADMIN_ID),
    )
    assert before.json()["timesheets"] == []


def test_invalid_week_parameter(client):
    res = client.get("/api/v1/timesheets", params={"weekStart": "next tuesday"}, headers=auth(ALICE_ID))
    assert (res.status_code, res.json()["detail"]) == (400, "Invalid date")


def test_default_is_current_week(client):
    assert client.get("/api/v1/timesheets", headers=auth(ALICE_ID)).json() == {"timesheets": []}
    created = client.post("/api/v1/timesheets", json={}, headers=auth(ALICE_ID))
    assert created.status_code == 201
    res = client.get("/api/v1/timesheets", headers=auth(ALICE_ID)).json()
    assert [t["id"] for t in res["timesheets"]] == [created.json()["id"]]


def test_pending_scopes(client):
    ids = {}
    for uid in (ALICE_ID, BOB_ID, CAROL_ID):
        ids[uid] = _create(client, uid)
        _submit(client, ids[uid], uid)

    admin = client.get("/api/v1/timesheets/pending", headers=auth(ADMIN_ID)).json()["timesheets"]
    assert {t["id"] for t in admin} == set(ids.values())

    # Alice via the team, Bob via the project the manager runs
    manager = client.get("/api/v1/timesheets/pending", headers=auth(MANAGER_ID)).json()["timesheets"]
    assert {t["id"] for t in manager} == {ids[ALICE_ID], ids[BOB_ID]}

    assert client.get("/api/v1/timesheets/pending", headers=auth(CAROL_ID)).status_code == 403


def test_running_timer_lookup(client, alice_sheet):
    assert client.get("/api/v1/timesheets/running-timer", headers=auth(ALICE_ID)).json() == {
        "timesheetId": None,
        "weekStart": None,
        "runningEntry": None,
    }
    key = add_entry(client, alice_sheet["id"], isTimer=True).json()["entry"]["key"]

    res = client.get("/api/v1/timesheets/running-timer", headers=auth(ALICE_ID)).json()
    assert res["timesheetId"] == alice_sheet["id"]
    assert res["weekStart"] == "2025-03-10"
    assert res["runningEntry"]["key"] == key
    assert res["runningEntry"]["project"]["name"] == "Website Relaunch"

    other = client.get("/api/v1/timesheets/running-timer", params={"userId": str(ALICE_ID)}, headers=auth(MANAGER_ID))
    assert other.json()["runningEntry"]["key"] == key
    assert client.get(
        "/api/v1/timesheets/running-timer", params={"userId": str(ALICE_ID)}, headers=auth(BOB_ID)
    ).status_code == 403
