import pytest

from api import create_app
from api.extensions import EXTENSION_KEY
from helpers import RELAXED_LIMITS, login, refresh_cookie, register
from models.repository import ADMIN_ROLE
from utils.mailer import Mailer


class RecordingMailer(Mailer):
    """Keeps every outgoing token instead of talking to SMTP."""

    def __init__(self):
        super().__init__()
        self.password_resets = []
        self.verifications = []

    def send_password_reset(self, to_email, user_id, token):
        self.password_resets.append({"to": to_email, "userId": user_id, "token": token})
        return True

    def send_email_verification(self, to_email, user_id, token):
        self.verifications.append({"to": to_email, "userId": user_id, "token": token})
        return True


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def make_app(mailer):
    apps = []

    def _make(**kwargs):
        overrides = {"RATE_LIMITS": RELAXED_LIMITS}
        overrides.update(kwargs.pop("overrides", {}))
        kwargs.setdefault("mailer", mailer)
        app = create_app("testing", overrides=overrides, **kwargs)
        apps.append(app)
        return app

    yield _make
    for app in apps:
        svc = app.extensions[EXTENSION_KEY]
        svc.dispatcher.shutdown()
        svc.storage.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    # cookies are passed explicitly so tests can replay old ones
    return app.test_client(use_cookies=False)


@pytest.fixture
def services(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def alice(client):
    resp = register(client)
    assert resp.status_code == 201
    return resp.get_json()["data"]


@pytest.fixture
def alice_session(client, alice):
    resp = login(client)
    assert resp.status_code == 200
    return {"access": resp.get_json()["accessToken"], "refresh": refresh_cookie(resp), "user": alice}


@pytest.fixture
def admin_token(client, services):
    resp = register(client, username="root", email="root@x.com")
    assert resp.status_code == 201
    with client.application.app_context():
        services.users.seed_default_roles()
        user = services.users.get(resp.get_json()["data"]["id"])
        assert services.users.grant_role(user, ADMIN_ROLE)
    resp = login(client, email="root@x.com")
    assert sorted(resp.get_json()["user"]["roles"]) == ["ADMIN", "USER"]
    return resp.get_json()["accessToken"]
