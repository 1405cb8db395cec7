from redis.exceptions import ConnectionError as RedisConnectionError

from helpers import BrokenStorage, FlakyBackend, bearer, cookie_header, login, refresh_cookie, register


class DeadBackend:
    name = "redis"

    def _fail(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    set = get = delete = ping = _fail


def test_health_without_shared_stores_reports_degraded(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.get_json()
    # testing config has no Redis, so sessions live in process memory
    assert body["status"] == "degraded"
    assert body["sessionStore"]["degraded"] is True
    assert body["sessionStore"]["backend"] == "memory"
    assert body["rateLimiter"]["degraded"] is False
    assert body["database"]["reachable"] is True


def test_health_ok_with_working_session_backend(make_app):
    client = make_app(session_backend=FlakyBackend()).test_client()
    body = client.get("/api/v1/health").get_json()
    assert body["status"] == "ok"
    assert body["sessionStore"]["backend"] == "redis"


def test_login_survives_session_store_outage(make_app):
    client = make_app(session_backend=DeadBackend()).test_client(use_cookies=False)
    register(client)

    resp = login(client)
    assert resp.status_code == 200
    access = resp.get_json()["accessToken"]
    assert client.get("/api/v1/auth/user-profile", headers=bearer(access)).status_code == 200

    # rotation still works against the in-process copy
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(refresh_cookie(resp)))
    assert resp.status_code == 200

    body = client.get("/api/v1/health").get_json()
    assert body["status"] == "degraded"
    assert "unavailable" in body["sessionStore"]["reason"]


def test_limiter_storage_outage_is_reported(make_app):
    client = make_app(session_backend=FlakyBackend(), rate_limit_storage=BrokenStorage()).test_client()
    assert register(client).status_code == 201

    body = client.get("/api/v1/health").get_json()
    assert body["status"] == "degraded"
    assert body["rateLimiter"]["degraded"] is True
    assert body["sessionStore"]["degraded"] is False


def test_refresh_token_rotated_during_outage_stays_revoked_after_recovery(make_app):
    backend = FlakyBackend()
    client = make_app(session_backend=backend).test_client(use_cookies=False)
    register(client)
    first = refresh_cookie(login(client))

    backend.down = True
    resp = client.post("/api/v1/auth/refresh-token", headers=cookie_header(first))
    assert resp.status_code == 200
    second = refresh_cookie(resp)

    backend.down = False
    assert client.post("/api/v1/auth/refresh-token", headers=cookie_header(first)).status_code == 401
    assert client.get("/api/v1/health").get_json()["status"] == "ok"
    assert client.post("/api/v1/auth/refresh-token", headers=cookie_header(second)).status_code == 200
