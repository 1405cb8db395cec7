from datetime import datetime, timedelta, timezone

from helpers import bearer


def test_own_activity_newest_first(client, alice_session):
    headers = bearer(alice_session["access"])
    client.post("/api/v1/auth/change-password", json={"currentPassword": "Abcd1234", "newPassword": "Efgh5678"},
                headers=headers)

    body = client.get("/api/v1/activities", headers=headers).get_json()
    assert [e["action"] for e in body["data"]] == ["PASSWORD_CHANGED", "LOGIN", "REGISTER"]
    assert body["meta"] == {"page": 1, "limit": 20, "total": 3}
    assert body["data"][1]["ipAddress"] == "127.0.0.1"


def test_activity_filters(client, alice_session):
    headers = bearer(alice_session["access"])

    body = client.get("/api/v1/activities?action=login", headers=headers).get_json()
    assert [e["action"] for e in body["data"]] == ["LOGIN"]

    today = datetime.now(timezone.utc).date()
    body = client.get(f"/api/v1/activities?startDate={today}&endDate={today}", headers=headers).get_json()
    assert body["meta"]["total"] == 2
    tomorrow = today + timedelta(days=1)
    body = client.get(f"/api/v1/activities?startDate={tomorrow}", headers=headers).get_json()
    assert body["data"] == []

    assert client.get("/api/v1/activities?startDate=yesterday", headers=headers).status_code == 400
    body = client.get("/api/v1/activities?limit=1&page=2", headers=headers).get_json()
    assert [e["action"] for e in body["data"]] == ["REGISTER"]


def test_activity_is_private(client, alice_session):
    assert client.get("/api/v1/activities").status_code == 401
    url = f"/api/v1/users/{alice_session['user']['id']}/activities"
    assert client.get(url, headers=bearer(alice_session["access"])).status_code == 403


def test_admin_reads_any_users_activity(client, admin_token, alice_session):
    headers = bearer(admin_token)
    body = client.get(f"/api/v1/users/{alice_session['user']['id']}/activities", headers=headers).get_json()
    assert [e["action"] for e in body["data"]] == ["LOGIN", "REGISTER"]

    assert client.get("/api/v1/users/nope/activities", headers=headers).status_code == 404
