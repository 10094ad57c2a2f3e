"""Helpers shared by the test modules."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Optional

from app.core.config import Settings
from app.core.security import create_access_token
from app.domains.changes.entities import Change
from app.domains.changes.feed import ChangeStream

TEST_SECRET = "test-secret"


def make_settings(tmp_path, **overrides: Any) -> Settings:
    values = dict(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret=TEST_SECRET,
        uploads_dir=str(tmp_path / "uploads"),
        sse_heartbeat_seconds=30.0,
        trigger_retry_attempts=2,
        trigger_retry_delay=0.01,
        watch_buffer_size=100,
    )
    values.update(overrides)
    return Settings(**values)


def token_for(user_id: str) -> str:
    return create_access_token({"sub": user_id}, secret=TEST_SECRET)


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


async def wait_for(condition: Callable[[], Any], timeout: float = 2.0, interval: float = 0.01) -> Any:
    """Poll ``condition`` (sync or async) until it returns a truthy value."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        result = condition()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return result
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


def poll(condition: Callable[[], Any], timeout: float = 3.0, interval: float = 0.02) -> Any:
    """Blocking variant of ``wait_for`` for TestClient-based tests."""
    deadline = time.monotonic() + timeout
    while True:
        result = condition()
        if result:
            return result
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(interval)


async def next_item(source, timeout: float = 1.0):
    return await asyncio.wait_for(source.__anext__(), timeout)


def parse_frame(frame: str) -> Any:
    assert frame.startswith("event: message\ndata: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("event: message\ndata: "):])


class FakeConnection:
    """Stands in for a WebSocket: records every text frame."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(json.loads(text))


class FakeStore:
    """Store double whose change streams are driven by the test."""

    def __init__(self) -> None:
        self.streams: list = []

    def watch(self, collection: str, match=None) -> ChangeStream:
        stream = ChangeStream(collection, match)
        self.streams.append(stream)
        return stream


class PassThroughReviver:
    """Counts revivals and returns changes untouched."""

    def __init__(self) -> None:
        self.calls = 0

    async def revive_change(self, collection: str, change: Change) -> Change:
        self.calls += 1
        return change


class CountingStore:
    """Wraps a store and records which collections ``get_many`` queried."""

    def __init__(self, store) -> None:
        self.store = store
        self.calls: list = []

    async def get_many(self, collection, order=None, filters=None, limit: Optional[int] = None):
        self.calls.append(collection)
        return await self.store.get_many(collection, order, filters, limit)

    async def get_one(self, path):
        return await self.store.get_one(path)
