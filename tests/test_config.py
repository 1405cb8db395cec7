import pytest

from api import create_app
from api.config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config
from utils.exceptions import ConfigurationError


@pytest.mark.parametrize(
    "name,expected",
    [
        ("testing", TestingConfig),
        ("test", TestingConfig),
        ("prod", ProductionConfig),
        ("production", ProductionConfig),
        ("dev", DevelopmentConfig),
    ],
)
def test_get_config(name, expected):
    assert get_config(name) is expected


def test_production_cookie_is_secure():
    assert ProductionConfig.REFRESH_COOKIE_SECURE is True


@pytest.mark.parametrize("missing", ["ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET"])
def test_app_refuses_to_start_without_jwt_secrets(missing):
    with pytest.raises(ConfigurationError):
        create_app("testing", overrides={missing: None})


def test_secure_cookie_flag_is_applied(make_app):
    client = make_app(overrides={"REFRESH_COOKIE_SECURE": True}).test_client(use_cookies=False)
    client.post("/api/v1/auth/register", json={"username": "alice", "email": "a@x.com", "password": "Abcd1234"})
    resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "Abcd1234"})
    cookie = [h for h in resp.headers.getlist("Set-Cookie") if h.startswith("refreshToken=")][0]
    assert "Secure" in cookie


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["error"] == "NOT_FOUND"
    assert body["status"] == 404
    assert body["message"]
