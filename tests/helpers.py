"""Request helpers and fakes shared by the tests."""

from limits.storage import MemoryStorage
from redis.exceptions import ConnectionError as RedisConnectionError

from utils.session_cache import MemorySessionStore

ALICE = {"username": "alice", "email": "a@x.com", "password": "Abcd1234"}


def refresh_cookie(response, name="refreshToken"):
    """Value of the refresh cookie set by response, or None."""
    for header in response.headers.getlist("Set-Cookie"):
        key, _, rest = header.partition("=")
        if key == name:
            return rest.split(";", 1)[0]
    return None


def set_cookie_header(response, name="refreshToken"):
    for header in response.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def cookie_header(token, name="refreshToken"):
    return {"Cookie": f"{name}={token}"}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, **fields):
    payload = dict(ALICE)
    payload.update(fields)
    return client.post("/api/v1/auth/register", json=payload)


def login(client, email=ALICE["email"], password=ALICE["password"], **kwargs):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password}, **kwargs)


# generous limits so ordinary tests never trip the limiter
RELAXED_LIMITS = {
    "public": (1000, 600),
    "auth": (1000, 600),
    "sensitive": (1000, 600),
    "user": (1000, 600),
    "unauthenticated": (1000, 600),
}


class FlakyBackend(MemorySessionStore):
    """Memory store that can be switched to fail like an unreachable Redis."""

    name = "redis"

    def __init__(self):
        super().__init__()
        self.down = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("connection refused")

    def set(self, key, value, ex):
        self._check()
        super().set(key, value, ex)

    def get(self, key):
        self._check()
        return super().get(key)

    def delete(self, key):
        self._check()
        super().delete(key)

    def ping(self):
        self._check()
        return True


class BrokenStorage(MemoryStorage):
    """Rate limit storage that is unreachable."""

    def incr(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    def check(self):
        raise RedisConnectionError("connection refused")


class QueuedDispatcher:
    """Holds jobs until the test runs them."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        self.jobs.append((fn, args, kwargs))

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for fn, args, kwargs in jobs:
            fn(*args, **kwargs)

    def shutdown(self, wait=True):
        pass
