"""Integration test fixtures.

Provides a fully wired AppState with in-memory SQLite, the fake browser
backend, a fake language model and a mock transport for the tweet
endpoint, plus an HTTP client talking to the ASGI app in-process.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from markdowner.cache import Cache
from markdowner.config import Settings
from markdowner.ratelimit import RateLimiter
from markdowner.server import create_app
from markdowner.state import AppState, build_state

if TYPE_CHECKING:
    from pathlib import Path

    from fakes import FakeModel

    from markdowner.browser import BrowserSessionManager

TRUSTED_TOKEN = "integration-token"

TWEET_PAYLOAD = {
    "text": "Integration tweet",
    "user": {"name": "tester"},
    "created_at": "2024-04-01T10:00:00.000Z",
    "favorite_count": 1,
    "conversation_count": 0,
}


def _tweet_endpoint(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("id") == "404":
        return httpx.Response(404)
    return httpx.Response(200, json=TWEET_PAYLOAD)


@pytest.fixture()
def rate() -> str:
    """Override in a test module to tighten the per-IP budget."""
    return "100/minute"


@pytest.fixture()
async def app_state(
    sessions: BrowserSessionManager, model: FakeModel, rate: str
) -> AppState:
    """Full AppState wired for integration tests."""
    async with aiosqlite.connect(":memory:") as db:
        cache = Cache(db)
        await cache.init_db()

        async with httpx.AsyncClient(transport=httpx.MockTransport(_tweet_endpoint)) as client:
            settings = Settings(security={"trusted_token": TRUSTED_TOKEN})
            yield build_state(
                settings,
                cache=cache,
                http_client=client,
                sessions=sessions,
                model=model,
                limiter=RateLimiter(rate),
            )


@pytest.fixture()
async def client(app_state: AppState):
    app = create_app(state=app_state)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Environment for running the server as a subprocess, isolated in tmp_path."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("MARKDOWNER__")}
    env["MARKDOWNER__CACHE__DB_PATH"] = str(tmp_path / "cache.db")
    env["MARKDOWNER__SERVER__HOST"] = "127.0.0.1"
    return env
