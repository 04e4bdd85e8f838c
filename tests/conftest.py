import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import parse_qsl, urlsplit

import pytest
from django.contrib.sessions.backends.db import SessionStore
from django.core.cache import cache

from apps.common.api import CREDENTIALS_SESSION_KEY


class DummyResponse:
    def __init__(self, status_code: int, payload: object = None, headers: dict | None = None, content: bytes = b""):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.content = content

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]


@dataclass
class Call:
    method: str
    path: str
    query: dict[str, str]
    headers: dict[str, str]
    json: Any
    params: dict | None

    @property
    def token(self) -> str | None:
        auth = self.headers.get("Authorization") or ""
        return auth.removeprefix("Bearer ") or None


@dataclass
class FakeBackend:
    """Stand-in for the HTTP backend, keyed by (method, path)."""

    routes: dict[tuple[str, str], list] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)

    def on(self, method: str, path: str, *responses: DummyResponse | Callable[[Call], DummyResponse]) -> None:
        self.routes[(method.upper(), path)] = list(responses)

    def json(self, method: str, path: str, payload: object, status: int = 200) -> None:
        self.on(method, path, DummyResponse(status, payload))

    def calls_to(self, path: str, method: str | None = None) -> list[Call]:
        return [c for c in self.calls if c.path == path and (method is None or c.method == method.upper())]

    def __call__(self, method, url, headers=None, json=None, params=None, timeout=None, stream=False):
        parts = urlsplit(url)
        call = Call(method.upper(), parts.path, dict(parse_qsl(parts.query)), headers or {}, json, params)
        self.calls.append(call)
        queue = self.routes.get((call.method, call.path))
        if not queue:
            return DummyResponse(404, {"success": False, "message": f"no route for {call.method} {call.path}"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        return response(call) if callable(response) else response


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr("apps.common.api.requests.request", fake)
    return fake


def make_credentials(role: str = "MERCHANT_OWNER", token: str = "access-1") -> dict:
    return {
        "accessToken": token,
        "refreshToken": "refresh-1",
        "user": {"id": "u1", "name": "Rina", "email": "rina@example.com", "role": role},
    }


@pytest.fixture
def login_as(client, db):
    def _login(role: str = "MERCHANT_OWNER", token: str = "access-1"):
        session = client.session
        session[CREDENTIALS_SESSION_KEY] = make_credentials(role, token)
        session.save()
        return client
    return _login


@pytest.fixture
def admin_client(login_as):
    return login_as("MERCHANT_OWNER")


@pytest.fixture
def superadmin_client(login_as):
    return login_as("SUPER_ADMIN")


@pytest.fixture
def api_req(rf, db):
    """A bare request carrying a logged-in session, for calling the API helpers directly."""
    request = rf.get("/")
    request.session = SessionStore()
    request.session[CREDENTIALS_SESSION_KEY] = make_credentials()
    return request


def flash_of(resp) -> dict:
    return jsonlib.loads(resp.headers["HX-Trigger"])["flash"]
