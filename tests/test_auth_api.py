from datetime import timedelta

from api.extensions import EXTENSION_KEY
from helpers import ALICE, QueuedDispatcher, bearer, cookie_header, login, refresh_cookie, register, set_cookie_header
from models.base_model import utcnow
from models.one_time_token import PasswordReset
from models.user import User


def test_alice_end_to_end(client):
    resp = register(client)
    assert resp.status_code == 201
    user = resp.get_json()["data"]
    assert user["username"] == "alice"
    assert user["email"] == "a@x.com"
    assert "password" not in user and "passwordHash" not in user

    resp = login(client)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["accessToken"]
    assert body["tokenType"] == "Bearer"
    assert body["expiresIn"] == 3600
    assert body["user"]["id"] == user["id"]
    cookie = set_cookie_header(resp)
    assert cookie is not None
    assert "HttpOnly" in cookie
    assert "SameSite=Strict" in cookie
    assert "Max-Age=604800" in cookie
    assert "Path=/" in cookie
    old_refresh = refresh_cookie(resp)

    resp = client.get("/api/v1/auth/user-profile", headers=bearer(body["accessToken"]))
    assert resp.status_code == 200
    profile = resp.get_json()["data"]
    assert profile["username"] == "alice"
    assert profile["email"] == "a@x.com"
    assert profile["roles"] == ["USER"]

    resp = client.post("/api/v1/auth/logout", headers=bearer(body["accessToken"]))
    assert resp.status_code == 200

    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(old_refresh))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "UNAUTHORIZED"


def test_password_is_stored_hashed(client, services, alice):
    with client.application.app_context():
        stored = services.users.get(alice["id"])
        assert stored.password_hash != ALICE["password"]
        assert services.passwords.verify(stored.password_hash, ALICE["password"])
        assert not services.passwords.verify(stored.password_hash, "Wrong1234")


def test_duplicate_email_conflicts_without_creating_user(client, services, alice):
    resp = register(client, username="alice2")
    assert resp.status_code == 409
    assert resp.get_json()["status"] == 409

    resp = register(client, email="other@x.com")
    assert resp.status_code == 409

    with client.application.app_context():
        assert services.storage.count(User) == 1


def test_register_validation_errors_are_400(client):
    resp = register(client, password="short", username="a!", email="nope")
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "VALIDATION_ERROR"
    assert set(body["details"]) >= {"password", "username", "email"}


def test_register_sends_verification_mail(client, mailer, alice):
    assert len(mailer.verifications) == 1
    assert mailer.verifications[0]["userId"] == alice["id"]


def test_login_accepts_username(client, alice):
    resp = login(client, email="alice")
    assert resp.status_code == 200


def test_login_failures_are_indistinguishable(client, alice):
    unknown = login(client, email="nobody@x.com")
    wrong = login(client, password="Wrong1234")
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.get_json() == wrong.get_json()
    assert unknown.get_json()["message"] == "Invalid credentials"


def test_refresh_rotates_and_rejects_replay(client, alice_session):
    old = alice_session["refresh"]

    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(old))
    assert resp.status_code == 200
    assert resp.get_json()["accessToken"]
    new = refresh_cookie(resp)
    assert new and new != old

    replay = client.post("/api/v1/auth/refresh-token", headers=cookie_header(old))
    assert replay.status_code == 401

    again = client.post("/api/v1/auth/refresh-token", headers=cookie_header(new))
    assert again.status_code == 200


def test_refresh_without_cookie_or_with_garbage(client, alice_session):
    assert client.post("/api/v1/auth/refresh-token").status_code == 401
    assert client.post("/api/v1/auth/refresh-token", headers=cookie_header("garbage")).status_code == 401
    # an access token is not a refresh token
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["access"]))
    assert resp.status_code == 401


def test_new_login_revokes_previous_refresh_token(client, alice_session):
    second = login(client)
    assert second.status_code == 200
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["refresh"]))
    assert resp.status_code == 401


def test_logout_keeps_access_token_valid_and_is_idempotent(client, alice_session):
    headers = bearer(alice_session["access"])
    resp = client.post("/api/v1/auth/logout", headers=headers)
    assert resp.status_code == 200
    cleared = set_cookie_header(resp)
    assert cleared is not None and cleared.startswith("refreshToken=;")

    assert client.get("/api/v1/auth/user-profile", headers=headers).status_code == 200
    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200

    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["refresh"]))
    assert resp.status_code == 401


def test_logout_requires_authentication(client):
    assert client.post("/api/v1/auth/logout").status_code == 401


def test_deactivated_user_cannot_refresh(client, services, alice_session):
    with client.application.app_context():
        user = services.users.get(alice_session["user"]["id"])
        user.is_active = False
        services.users.save(user)
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["refresh"]))
    assert resp.status_code == 401


def test_password_reset_request_does_not_leak_existence(client, mailer, alice):
    known = client.post("/api/v1/auth/request-password-reset", json={"email": "a@x.com"})
    unknown = client.post("/api/v1/auth/request-password-reset", json={"email": "ghost@x.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.get_data() == unknown.get_data()
    assert len(mailer.password_resets) == 1


def test_password_reset_request_does_the_same_work_for_any_email(make_app, mailer):
    dispatcher = QueuedDispatcher()
    app = make_app(dispatcher=dispatcher)
    client = app.test_client(use_cookies=False)
    register(client)
    dispatcher.run_all()
    services = app.extensions[EXTENSION_KEY]

    for email in ("a@x.com", "ghost@x.com"):
        resp = client.post("/api/v1/auth/request-password-reset", json={"email": email})
        assert resp.status_code == 200
    # the request path only queued a job; no lookup result leaked into it
    assert [job[1] for job in dispatcher.jobs] == [("a@x.com",), ("ghost@x.com",)]
    assert mailer.password_resets == []
    with app.app_context():
        assert services.storage.count(PasswordReset) == 0

    with app.app_context():
        dispatcher.run_all()
        assert services.storage.count(PasswordReset) == 1
    assert [m["to"] for m in mailer.password_resets] == ["a@x.com"]


def test_reset_token_is_single_use_and_revokes_sessions(client, mailer, alice_session):
    client.post("/api/v1/auth/request-password-reset", json={"email": "a@x.com"})
    sent = mailer.password_resets[-1]
    payload = {"userId": sent["userId"], "token": sent["token"], "newPassword": "Newpass123"}

    resp = client.post("/api/v1/auth/reset-password", json=payload)
    assert resp.status_code == 200

    again = client.post("/api/v1/auth/reset-password", json=payload)
    assert again.status_code == 400

    assert login(client).status_code == 401
    assert login(client, password="Newpass123").status_code == 200
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["refresh"]))
    assert resp.status_code == 401


def test_second_reset_request_supersedes_first(client, mailer, alice):
    client.post("/api/v1/auth/request-password-reset", json={"email": "a@x.com"})
    client.post("/api/v1/auth/request-password-reset", json={"email": "a@x.com"})
    first, second = mailer.password_resets

    resp = client.post(
        "/api/v1/auth/reset-password",
        json={"userId": first["userId"], "token": first["token"], "newPassword": "Newpass123"},
    )
    assert resp.status_code == 400
    resp = client.post(
        "/api/v1/auth/reset-password",
        json={"userId": second["userId"], "token": second["token"], "newPassword": "Newpass123"},
    )
    assert resp.status_code == 200


def test_expired_reset_token_is_rejected(client, services, mailer, alice):
    client.post("/api/v1/auth/request-password-reset", json={"email": "a@x.com"})
    sent = mailer.password_resets[-1]
    with client.application.app_context():
        record = services.users.get_password_reset(alice["id"])
        record.expires_at = utcnow() - timedelta(minutes=1)
        services.users.save(record)

    resp = client.post(
        "/api/v1/auth/reset-password",
        json={"userId": sent["userId"], "token": sent["token"], "newPassword": "Newpass123"},
    )
    assert resp.status_code == 400
    with client.application.app_context():
        assert services.users.get_password_reset(alice["id"]) is None


def test_email_verification(client, mailer, alice_session):
    sent = mailer.verifications[-1]
    bad = client.post("/api/v1/auth/verify-email", json={"userId": sent["userId"], "token": "nope"})
    assert bad.status_code == 400

    resp = client.post("/api/v1/auth/verify-email", json={"userId": sent["userId"], "token": sent["token"]})
    assert resp.status_code == 200

    again = client.post("/api/v1/auth/verify-email", json={"userId": sent["userId"], "token": sent["token"]})
    assert again.status_code == 400

    profile = client.get("/api/v1/auth/user-profile", headers=bearer(alice_session["access"])).get_json()["data"]
    assert profile["emailVerified"] is True

    resp = client.post("/api/v1/auth/request-email-verification", headers=bearer(alice_session["access"]))
    assert resp.status_code == 409


def test_request_email_verification_reissues_token(client, mailer, alice_session):
    resp = client.post("/api/v1/auth/request-email-verification", headers=bearer(alice_session["access"]))
    assert resp.status_code == 200
    assert len(mailer.verifications) == 2


def test_two_factor_accounts_get_a_challenge_instead_of_tokens(client, services, alice):
    with client.application.app_context():
        user = services.users.get(alice["id"])
        user.two_factor_enabled = True
        services.users.save(user)

    resp = login(client)
    assert resp.status_code == 200
    assert resp.get_json() == {"requiresTwoFactor": True, "userId": alice["id"]}
    assert refresh_cookie(resp) is None


def test_profile_update_and_conflicts(client, alice_session):
    register(client, username="bob", email="b@x.com")
    headers = bearer(alice_session["access"])

    resp = client.patch("/api/v1/auth/user-profile", json={"firstName": "Alice", "email": "alice@x.com"}, headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["firstName"] == "Alice"
    assert data["email"] == "alice@x.com"
    assert data["emailVerified"] is False

    assert client.patch("/api/v1/auth/user-profile", json={"username": "bob"}, headers=headers).status_code == 409
    assert client.patch("/api/v1/auth/user-profile", json={}, headers=headers).status_code == 400


def test_change_password(client, alice_session):
    headers = bearer(alice_session["access"])
    wrong = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": "Wrong1234", "newPassword": "Newpass123"},
        headers=headers,
    )
    assert wrong.status_code == 401

    weak = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": ALICE["password"], "newPassword": "weak"},
        headers=headers,
    )
    assert weak.status_code == 400

    resp = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": ALICE["password"], "newPassword": "Newpass123"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert login(client, password="Newpass123").status_code == 200
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(alice_session["refresh"]))
    assert resp.status_code == 401


def test_request_id_is_echoed(client):
    resp = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
    assert client.get("/api/v1/health").headers["X-Request-ID"]


def test_account_settings_toggle_two_factor(client, alice_session):
    headers = bearer(alice_session["access"])
    resp = client.patch("/api/v1/auth/account-settings", json={"twoFactorEnabled": True}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["twoFactorEnabled"] is True

    resp = login(client)
    assert resp.get_json() == {"requiresTwoFactor": True, "userId": alice_session["user"]["id"]}

    resp = client.patch("/api/v1/auth/account-settings", json={"twoFactorEnabled": False}, headers=headers)
    assert resp.get_json()["data"]["twoFactorEnabled"] is False
    assert "accessToken" in login(client).get_json()

    entries = client.get("/api/v1/activities?action=ACCOUNT_SETTINGS_UPDATED", headers=headers).get_json()["data"]
    assert [e["details"] for e in entries] == [{"two_factor_enabled": False}, {"two_factor_enabled": True}]


def test_account_settings_validation(client, alice_session):
    headers = bearer(alice_session["access"])
    url = "/api/v1/auth/account-settings"
    assert client.patch(url, json={}, headers=headers).status_code == 400
    assert client.patch(url, json={"twoFactorEnabled": "maybe"}, headers=headers).status_code == 400
    assert client.patch(url, json={"twoFactorEnabled": True}).status_code == 401
