"""HTTP client for the ordering backend.

Every server read goes through :func:`query`, every write through
:func:`api_request`. Both attach the bearer token kept in the session,
refresh it once on 401 and raise :class:`AuthRequired` when the session
cannot be recovered. Reads are deduplicated through the Django cache so
that several partials asking for the same URL in one burst hit the
backend once.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Final

import requests
from django.conf import settings
from django.core.cache import cache

log = logging.getLogger(__name__)

CREDENTIALS_SESSION_KEY: Final[str] = "admin_auth"
GENERIC_ERROR: Final[str] = "An error occurred while fetching the data."
PERMISSION_ERROR: Final[str] = "You do not have permission to access this resource."
UNREACHABLE_ERROR: Final[str] = "Could not reach the server. Please try again."
REFRESH_PATH: Final[str] = "/api/auth/refresh"


@dataclass(slots=True)
class BackendError(Exception):
    message: str
    status_code: int

    def __str__(self) -> str:  # pragma: no cover - Exception.__str__ is trivial
        return self.message


class AuthRequired(Exception):
    """No usable bearer token: the caller must send the user to the login page."""


# -- credential storage -------------------------------------------------------

def get_credentials(request) -> dict[str, Any]:
    return request.session.get(CREDENTIALS_SESSION_KEY) or {}


def get_token(request) -> str | None:
    return get_credentials(request).get("accessToken") or None


def save_credentials(request, access_token: str, refresh_token: str | None = None, user: dict | None = None) -> None:
    current = get_credentials(request)
    request.session[CREDENTIALS_SESSION_KEY] = {
        "accessToken": access_token,
        "refreshToken": refresh_token or current.get("refreshToken"),
        "user": user if user is not None else current.get("user"),
    }
    request.session.modified = True


def clear_credentials(request) -> None:
    if CREDENTIALS_SESSION_KEY in request.session:
        del request.session[CREDENTIALS_SESSION_KEY]
        request.session.modified = True


# -- transport ----------------------------------------------------------------

def _url(path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{settings.BACKEND_API_URL}{path}"


def _send(method: str, url: str, token: str | None, *, json: Any = None, params: dict | None = None, stream: bool = False):
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        return requests.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
            timeout=settings.BACKEND_API_TIMEOUT,
            stream=stream,
        )
    except requests.RequestException as exc:
        log.warning("[api] %s %s failed: %s", method, url, exc)
        raise BackendError(UNREACHABLE_ERROR, 502) from exc


def _payload(response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def refresh_session(request) -> str | None:
    """Exchange the stored refresh token for a new access token."""
    creds = get_credentials(request)
    refresh_token = creds.get("refreshToken")
    if not refresh_token:
        return None
    try:
        response = _send("POST", _url(REFRESH_PATH), None, json={"refreshToken": refresh_token})
    except BackendError:
        return None
    if not response.ok:
        log.info("[api] refresh rejected status=%s", response.status_code)
        return None
    data = _payload(response).get("data") or {}
    token = data.get("accessToken")
    if not token:
        return None
    save_credentials(request, token, data.get("refreshToken") or refresh_token)
    return token


def _raise_for_status(request, response, payload: dict[str, Any], method: str, url: str) -> None:
    if response.ok:
        return
    status = response.status_code
    if status == 403:
        raise BackendError(PERMISSION_ERROR, 403)
    if status == 404 and payload.get("error") == "MERCHANT_NOT_FOUND":
        log.warning("[api] merchant for session no longer exists, clearing credentials")
        clear_credentials(request)
        raise AuthRequired("merchant not found")
    message = payload.get("message")
    if not message and isinstance(payload.get("error"), str):
        message = payload["error"]
    log.warning("[api] %s %s -> %s", method, url, status)
    raise BackendError(message or GENERIC_ERROR, status)


def _authorized_send(request, method: str, path: str, *, json: Any = None, params: dict | None = None, stream: bool = False):
    token = get_token(request)
    if not token:
        raise AuthRequired("missing token")
    url = _url(path)
    response = _send(method, url, token, json=json, params=params, stream=stream)
    if response.status_code == 401:
        token = refresh_session(request)
        if token:
            response = _send(method, url, token, json=json, params=params, stream=stream)
        if not token or response.status_code == 401:
            clear_credentials(request)
            raise AuthRequired("session expired")
    return response


def api_request(request, method: str, path: str, *, json: Any = None, params: dict | None = None) -> dict[str, Any]:
    """Authenticated JSON call; returns the decoded body or raises BackendError."""
    response = _authorized_send(request, method, path, json=json, params=params)
    payload = _payload(response)
    _raise_for_status(request, response, payload, method, path)
    if payload.get("success") is False:
        raise BackendError(payload.get("message") or GENERIC_ERROR, response.status_code)
    return payload


def api_stream(request, path: str, *, params: dict | None = None):
    """Authenticated GET returning the raw streamed response (file exports)."""
    response = _authorized_send(request, "GET", path, params=params, stream=True)
    if not response.ok:
        _raise_for_status(request, response, _payload(response), "GET", path)
    return response


def public_request(method: str, path: str, *, json: Any = None, params: dict | None = None, token: str | None = None) -> dict[str, Any]:
    """Call a public (customer-facing) endpoint; the bearer token is optional."""
    url = _url(path)
    response = _send(method, url, token, json=json, params=params)
    payload = _payload(response)
    if not response.ok or payload.get("success") is False:
        message = payload.get("message") or GENERIC_ERROR
        log.warning("[api] %s %s -> %s", method, path, response.status_code)
        raise BackendError(message, response.status_code if not response.ok else 422)
    return payload


# -- queries ------------------------------------------------------------------

@dataclass(slots=True)
class QueryResult:
    url: str
    data: Any = None
    error: BackendError | None = None
    refresh_interval: int = 0

    @property
    def is_loading(self) -> bool:
        return self.data is None and self.error is None

    @property
    def poll_seconds(self) -> int:
        """Interval for `hx-trigger="every Ns"`; 0 means no polling."""
        if self.refresh_interval <= 0:
            return 0
        return max(1, self.refresh_interval // 1000)

    def mutate(self, request) -> "QueryResult":
        return mutate(request, self.url, self.refresh_interval)


def _query_key(token: str | None, url: str) -> str:
    digest = hashlib.sha256(f"{token or ''}|{url}".encode("utf-8")).hexdigest()[:32]
    return f"query:{digest}"


def _fetch(request, url: str, refresh_interval: int) -> QueryResult:
    try:
        payload = api_request(request, "GET", url)
    except BackendError as exc:
        return QueryResult(url=url, error=exc, refresh_interval=refresh_interval)
    cache.set(_query_key(get_token(request), url), payload, settings.QUERY_DEDUP_SECONDS)
    return QueryResult(url=url, data=payload, refresh_interval=refresh_interval)


def query(request, url: str, refresh_interval: int = 0) -> QueryResult:
    """Read `url` from the backend, reusing a response fetched within the dedup window.

    Errors are returned on the result, never raised; only AuthRequired escapes.
    """
    if not get_token(request):
        raise AuthRequired("missing token")
    cached = cache.get(_query_key(get_token(request), url))
    if cached is not None:
        return QueryResult(url=url, data=cached, refresh_interval=refresh_interval)
    return _fetch(request, url, refresh_interval)


def mutate(request, url: str, refresh_interval: int = 0) -> QueryResult:
    """Drop any cached response for `url` and fetch it again."""
    cache.delete(_query_key(get_token(request), url))
    return _fetch(request, url, refresh_interval)


def query_static(request, url: str) -> QueryResult:
    return query(request, url, settings.POLL_INTERVALS["static"])
