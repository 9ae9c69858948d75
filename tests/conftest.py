"""Pytest configuration and fixtures."""
from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from config import settings
from services.storage import Database


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch, tmp_path) -> None:
    """Set up test environment variables"""
    monkeypatch.setenv('DB_PATH', str(tmp_path / 'env.db'))
    monkeypatch.setenv('PAGESPEED_API_KEY', '')
    monkeypatch.setenv('GEMINI_API_KEY', 'test-gemini-key')
    monkeypatch.setenv('SCREENSHOT_PROVIDER', 'mock')
    monkeypatch.setenv('SWEEP_DELAY_SECONDS', '2')
    monkeypatch.setenv('SWEEP_HOUR_UTC', '9')
    monkeypatch.setenv('ALERT_BOT_TOKEN', '')
    monkeypatch.setenv('ADMIN_CHAT_IDS', '')
    settings.reload()


@pytest.fixture
def temp_db(tmp_path) -> Database:
    return Database(tmp_path / 'test.db')


PAGESPEED_PAYLOAD: dict[str, Any] = {
    "lighthouseResult": {
        "categories": {"performance": {"score": 0.873}},
        "audits": {
            "first-contentful-paint": {"numericValue": 1234.4},
            "largest-contentful-paint": {"numericValue": 2500.5},
            "speed-index": {"numericValue": 3100.49},
            "total-blocking-time": {"numericValue": 150.0},
            "cumulative-layout-shift": {"numericValue": 0.12345},
        },
    }
}


@pytest.fixture
def pagespeed_payload() -> dict[str, Any]:
    """A PageSpeed response with every metric present"""
    return copy.deepcopy(PAGESPEED_PAYLOAD)


class FakeUpstream:
    """In-process HTTP server replaying scripted responses.

    Each script entry is one of:
        ("json", payload, status)
        ("text", body, status)
        ("sleep", seconds)
    The last entry repeats once the script is exhausted.
    """

    def __init__(self, *script: tuple) -> None:
        self.script = list(script)
        self.requests: list[dict[str, Any]] = []
        self._server: TestServer | None = None

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.text()
        self.requests.append({"method": request.method, "query": dict(request.query), "body": body})
        index = min(len(self.requests), len(self.script)) - 1
        entry = self.script[index]
        kind = entry[0]
        if kind == "sleep":
            await asyncio.sleep(entry[1])
            return web.json_response({})
        if kind == "json":
            return web.json_response(entry[1], status=entry[2])
        return web.Response(text=entry[1], status=entry[2])

    @property
    def url(self) -> str:
        assert self._server is not None
        return str(self._server.make_url("/endpoint"))

    async def __aenter__(self) -> "FakeUpstream":
        app = web.Application()
        app.router.add_route("*", "/endpoint", self._handle)
        self._server = TestServer(app)
        await self._server.start_server()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        assert self._server is not None
        await self._server.close()


@pytest.fixture
def fake_upstream():
    """Factory for scripted fake upstream servers"""
    return FakeUpstream
