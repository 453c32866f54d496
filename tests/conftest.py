"""
Pytest configuration and fixtures for notebridge_mcp tests.

Sets up required environment variables before any imports.
"""

import os

# Set environment variables BEFORE any notebridge_mcp imports
# Config uses NOTEBRIDGE_ prefix (see config.py model_config)
os.environ.setdefault("NOTEBRIDGE_API_BASE_URL", "http://notes.test")
os.environ.setdefault("NOTEBRIDGE_LOG_LEVEL", "DEBUG")

import json  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from notebridge_mcp.async_client import set_client_factory  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock for session expiry tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeNotesBackend:
    """
    In-memory stand-in for the notes REST API.

    Serves GET/PUT /v1/notes/{uid} through httpx.MockTransport and honours
    If-Match on PUT (409 on mismatch).
    """

    def __init__(self):
        self.notes: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        # Version bump applied by "another writer" right before the next PUT
        self.bump_before_put = False
        self.put_status: Optional[int] = None

    def add_note(self, uid: str, title: str, content: str, version: int = 1, **extra: Any) -> None:
        self.notes[uid] = {
            "uid": uid,
            "version": version,
            "updatedAt": "2025-01-01T00:00:00Z",
            "deletedAt": None,
            "payload": {"title": title, "content": content, **extra},
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = "/v1/notes/"
        if not request.url.path.startswith(prefix):
            return httpx.Response(404, json={"error": "not found"})

        uid = request.url.path[len(prefix):]
        note = self.notes.get(uid)
        if note is None:
            return httpx.Response(404, json={"error": f"note {uid} not found"})

        if request.method == "GET":
            return httpx.Response(200, json=note)

        if request.method == "PUT":
            if self.put_status is not None:
                return httpx.Response(self.put_status, text="backend failure")
            if self.bump_before_put:
                note["version"] += 1
                self.bump_before_put = False

            if_match = request.headers.get("If-Match")
            if if_match is not None and int(if_match) != note["version"]:
                return httpx.Response(409, json={"error": "version mismatch"})

            body = json.loads(request.content)
            body.pop("uid", None)
            note["payload"] = body
            note["version"] += 1
            return httpx.Response(200, json=note)

        return httpx.Response(405)

    @property
    def puts(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notes_backend():
    """Route get_client() to an in-memory notes backend for the test."""
    backend = FakeNotesBackend()

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(backend.handler),
            base_url="http://notes.test",
        )

    set_client_factory(factory)
    yield backend
    set_client_factory(None)
