"""
In-process stand-in for the ADDITIYA REST backend.

Speaks the same envelope as the real service (``{success, data}`` on success,
``{success: false, message}`` on failure) and plugs into ``httpx`` through
``MockTransport``, so the real ApiTransport and SessionController run
unchanged against it. Used by the demo script and the integration tests.
"""

import asyncio
import itertools
import json
import secrets
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

PHOTO_BASE_URL = "https://cdn.additiya.test/photos"
UPDATABLE_FIELDS = ("name", "email", "address", "phone")


@dataclass(frozen=True)
class RecordedRequest:
    method: str
    path: str
    authorized: bool
    body: dict[str, Any] | None


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _ok(data: dict[str, Any], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"success": True, "data": data})


def _fail(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"success": False, "message": message})


class SimulatedBackend:
    """
    Users, credentials and profile photos held in memory.

    Knobs for exercising failure paths:
    - ``offline``: every request fails at the connection level
    - ``fail_next(status, message)``: the next request gets that response
    - ``queue_delays(...)``: per-request latency, consumed in arrival order
    - ``expire_token`` / ``revoke_all_tokens``: make credentials answer 401
    """

    def __init__(self, latency_seconds: float = 0.0, register_issues_token: bool = True) -> None:
        self.latency_seconds = latency_seconds
        self.register_issues_token = register_issues_token
        self.offline = False
        self.requests: list[RecordedRequest] = []
        self._users: dict[str, dict[str, Any]] = {}
        self._passwords: dict[str, str] = {}
        self._tokens: dict[str, str] = {}
        self._failures: deque[tuple[int, str | None]] = deque()
        self._delays: deque[float] = deque()
        self._ids = itertools.count(1)
        self._photo_ids = itertools.count(1)
        self.logger = logger.bind(component="simulated_backend")

    # ------------------------------------------------------------------
    # Test and demo controls
    # ------------------------------------------------------------------

    def seed_user(
        self,
        name: str,
        email: str,
        password: str,
        address: str = "",
        phone: str = "",
    ) -> dict[str, Any]:
        user_id = f"u{next(self._ids):04d}"
        created = _now()
        user = {
            "_id": user_id,
            "name": name.strip(),
            "email": email.strip().lower(),
            "address": address.strip(),
            "phone": phone.strip(),
            "profile_photo": None,
            "createdAt": created,
            "updatedAt": created,
        }
        self._users[user_id] = user
        self._passwords[user_id] = password
        return dict(user)

    def user(self, email: str) -> dict[str, Any] | None:
        user_id = self._find_user_id(email)
        return dict(self._users[user_id]) if user_id else None

    def issue_token(self, email: str) -> str:
        user_id = self._find_user_id(email)
        if user_id is None:
            raise KeyError(email)
        token = secrets.token_urlsafe(24)
        self._tokens[token] = user_id
        return token

    def expire_token(self, token: str) -> None:
        self._tokens.pop(token, None)

    def revoke_all_tokens(self) -> None:
        self._tokens.clear()

    def fail_next(self, status_code: int, message: str | None = None) -> None:
        self._failures.append((status_code, message))

    def queue_delays(self, *seconds: float) -> None:
        self._delays.extend(seconds)

    def requests_to(self, path: str, method: str | None = None) -> list[RecordedRequest]:
        return [r for r in self.requests if r.path == path and (method is None or r.method == method)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        body = self._read_json(request)
        token = self._bearer(request)
        path = request.url.path
        self.requests.append(RecordedRequest(request.method, path, token is not None, body))

        delay = self._delays.popleft() if self._delays else self.latency_seconds
        if delay:
            await asyncio.sleep(delay)

        if self.offline:
            raise httpx.ConnectError("simulated network outage", request=request)

        if self._failures:
            status_code, message = self._failures.popleft()
            if message is None:
                return httpx.Response(status_code, json={"success": False})
            return _fail(status_code, message)

        route = (request.method, path)
        if route == ("POST", "/api/auth/login"):
            return self._login(body or {})
        if route == ("POST", "/api/auth/register"):
            return self._register(body or {})

        if route not in {
            ("GET", "/api/auth/profile"),
            ("PUT", "/api/auth/profile"),
            ("POST", "/api/auth/upload-profile-photo"),
            ("POST", "/api/auth/logout"),
        }:
            return _fail(404, f"Not found - {path}")

        user_id = self._tokens.get(token) if token else None
        if user_id is None:
            return _fail(401, "Not authorized, token failed")

        if route == ("GET", "/api/auth/profile"):
            return _ok({"user": dict(self._users[user_id])})
        if route == ("PUT", "/api/auth/profile"):
            return self._update_profile(user_id, body or {})
        if route == ("POST", "/api/auth/logout"):
            self._tokens.pop(token, None)
            return _ok({})
        return self._upload_photo(user_id, body or {})

    @staticmethod
    def _read_json(request: httpx.Request) -> dict[str, Any] | None:
        if not request.content:
            return None
        try:
            body = json.loads(request.content)
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    @staticmethod
    def _bearer(request: httpx.Request) -> str | None:
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            return header.removeprefix("Bearer ").strip() or None
        return None

    def _find_user_id(self, email: str) -> str | None:
        needle = email.strip().lower()
        for user_id, user in self._users.items():
            if user["email"] == needle:
                return user_id
        return None

    def _login(self, body: dict[str, Any]) -> httpx.Response:
        user_id = self._find_user_id(str(body.get("email", "")))
        if user_id is None or self._passwords[user_id] != body.get("password"):
            return _fail(401, "Invalid email or password")
        token = secrets.token_urlsafe(24)
        self._tokens[token] = user_id
        return _ok({"token": token, "user": dict(self._users[user_id])})

    def _register(self, body: dict[str, Any]) -> httpx.Response:
        required = ("name", "email", "address", "phone", "password")
        missing = [f for f in required if not str(body.get(f, "")).strip()]
        if missing:
            return _fail(400, f"Please provide {', '.join(missing)}")
        if self._find_user_id(body["email"]) is not None:
            return _fail(400, "User already exists")

        user = self.seed_user(
            body["name"], body["email"], body["password"], body["address"], body["phone"]
        )
        self.logger.info("simulated_user_registered", user_id=user["_id"])
        if not self.register_issues_token:
            return _ok({"user": user}, status_code=201)
        token = secrets.token_urlsafe(24)
        self._tokens[token] = user["_id"]
        return _ok({"token": token, "user": user}, status_code=201)

    def _update_profile(self, user_id: str, body: dict[str, Any]) -> httpx.Response:
        changes = {k: str(v).strip() for k, v in body.items() if k in UPDATABLE_FIELDS}
        if "email" in changes:
            changes["email"] = changes["email"].lower()
            owner = self._find_user_id(changes["email"])
            if owner is not None and owner != user_id:
                return _fail(400, "Email already in use")

        user = self._users[user_id]
        user.update(changes)
        user["updatedAt"] = _now()
        return _ok({"user": dict(user)})

    def _upload_photo(self, user_id: str, body: dict[str, Any]) -> httpx.Response:
        image = body.get("image")
        if not isinstance(image, str) or not image.startswith("data:image/"):
            return _fail(400, "Please provide an image")

        photo_ref = f"{PHOTO_BASE_URL}/{user_id}-{next(self._photo_ids)}.jpg"
        user = self._users[user_id]
        user["profile_photo"] = photo_ref
        user["updatedAt"] = _now()
        return _ok({"profile_photo": photo_ref})
