"""Tests for LiveSession SSE streams."""

from __future__ import annotations

import asyncio

import pytest

from app.domains.changes.entities import Change
from app.domains.changes.router import ChangeRouter
from app.domains.documents.entities import Filter, Patch
from app.domains.live.sse import (
    PING, LiveSession, addressed_to, format_sse, member_of_discussion,
)

from tests.helpers import next_item, parse_frame, wait_for


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _notifications(router, store, reviver, user_id: str = "u1", heartbeat: float = 30.0) -> LiveSession:
    return LiveSession(
        router,
        store,
        reviver,
        collection="notifications",
        scope=addressed_to(user_id),
        snapshot_filters=Filter("toIds", "in", [user_id]),
        heartbeat_interval=heartbeat,
    )


async def _next_change(events):
    while True:
        payload = parse_frame(await next_item(events))
        if payload != PING:
            return payload


async def _notify(store, to: str, content: str = "hello") -> str:
    return await store.insert("notifications", {
        "fromId": "u2", "toIds": [to], "readByIds": [], "content": content, "date": "2024-01-01",
    })


# ---------------------------------------------------------------------------
# Frames and predicates
# ---------------------------------------------------------------------------


class TestFrames:
    """SSE wire format and scope predicates."""

    def test_format(self) -> None:
        assert format_sse(PING) == 'event: message\ndata: "ping"\n\n'
        assert parse_frame(format_sse({"a": [1]})) == {"a": [1]}

    def test_member_of_discussion_checks_both_sides(self) -> None:
        predicate = member_of_discussion("u1")
        left = Change.update({"id": "d", "userIds": ["u1", "u2"]}, {"id": "d", "userIds": ["u2"]})
        assert predicate(left)
        assert not predicate(Change.insert({"id": "d", "userIds": ["u2", "u3"]}))

    def test_addressed_to(self) -> None:
        predicate = addressed_to("u1")
        assert predicate(Change.delete({"id": "n", "toIds": ["u1"]}))
        assert not predicate(Change.insert({"id": "n", "toIds": ["u2"]}))
        assert not predicate(Change.insert({"id": "n"}))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestLiveSession:
    """Snapshot, scoped changes, heartbeat and teardown."""

    @pytest.mark.asyncio
    async def test_snapshot_then_scoped_changes(self, store, reviver, router, people) -> None:
        await _notify(store, "u1", "@@from.name@@ cheers for Bikes")
        await _notify(store, "u2", "not yours")

        session = _notifications(router, store, reviver)
        events = session.events()
        snapshot = parse_frame(await next_item(events))
        assert [n["content"] for n in snapshot] == ["Bob cheers for Bikes"]

        await _notify(store, "u2", "still not yours")
        mine = await _notify(store, "u1", "second")
        change = await _next_change(events)
        assert change["type"] == "insert"
        assert change["docId"] == mine
        assert change["docBefore"] is None
        assert change["docAfter"]["from"]["name"] == "Bob"

        await store.patch(f"notifications/{mine}", Patch("readByIds", "addToSet", "u1"))
        update = await _next_change(events)
        assert update["type"] == "update"
        assert update["docAfter"]["readByIds"] == ["u1"]
        await events.aclose()

    @pytest.mark.asyncio
    async def test_heartbeat(self, store, reviver, router) -> None:
        session = _notifications(router, store, reviver, heartbeat=0.05)
        events = session.events()
        assert parse_frame(await next_item(events)) == []
        assert parse_frame(await next_item(events)) == PING
        assert parse_frame(await next_item(events)) == PING
        await events.aclose()

    @pytest.mark.asyncio
    async def test_disconnect_releases_resources(self, store, reviver, router) -> None:
        session = _notifications(router, store, reviver, heartbeat=0.05)
        events = session.events()
        await next_item(events)
        assert router.subscriber_count("notifications") == 1

        await events.aclose()
        await asyncio.sleep(0.01)
        assert router.subscriber_count("notifications") == 0
        assert not session.subscription.active
        assert session.heartbeat.done()

    @pytest.mark.asyncio
    async def test_cannot_open_twice(self, store, reviver, router) -> None:
        session = _notifications(router, store, reviver)
        await session.open()
        with pytest.raises(RuntimeError):
            await session.open()
        session.close()
        session.close()

    @pytest.mark.asyncio
    async def test_discussions_scope(self, store, reviver, router, people) -> None:
        session = LiveSession(
            router, store, reviver,
            collection="discussions",
            scope=member_of_discussion("u1"),
            snapshot_filters=Filter("userIds", "in", ["u1"]),
        )
        events = session.events()
        assert parse_frame(await next_item(events)) == []

        await store.insert("discussions", {"userIds": ["u2", "u3"], "readByIds": []})
        mine = await store.insert("discussions", {"userIds": ["u1", "u2"], "readByIds": []})
        change = await _next_change(events)
        assert change["docId"] == mine
        assert [u["name"] for u in change["docAfter"]["users"]] == ["Alice", "Bob"]
        await events.aclose()

    @pytest.mark.asyncio
    async def test_client_that_stops_reading_is_cut_off(self, store, reviver) -> None:
        router = ChangeRouter(store, reviver, buffer_size=2)
        session = _notifications(router, store, reviver)
        events = session.events()
        await next_item(events)

        for n in range(3):
            await _notify(store, "u1", f"n{n}")
        await wait_for(lambda: not session.subscription.active)
        assert router.subscriber_count("notifications") == 0

        assert parse_frame(await next_item(events))["docAfter"]["content"] == "n1"
        with pytest.raises(StopAsyncIteration):
            await next_item(events)
        await router.close()

    @pytest.mark.asyncio
    async def test_upstream_failure_ends_stream(self, store, reviver, router) -> None:
        session = _notifications(router, store, reviver)
        events = session.events()
        await next_item(events)
        await store.close()
        with pytest.raises(StopAsyncIteration):
            await next_item(events)
        assert router.watched_collections() == []
