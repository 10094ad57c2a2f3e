"""Tests for ChatRoom and ChatRoomManager."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from app.domains.changes.entities import Change, ChangeType
from app.domains.live.chat import PLACEHOLDER_ID, ChatRoom, ChatRoomManager

from tests.helpers import FakeConnection, wait_for


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


async def _message(store, discussion: str, author: str, content: str, minutes: int = 0) -> str:
    return await store.insert("messages", {
        "discussionId": discussion,
        "authorId": author,
        "content": content,
        "date": BASE + timedelta(minutes=minutes),
        "deleted": False,
    })


@pytest_asyncio.fixture
async def rooms(store, reviver, router):
    manager = ChatRoomManager(router, store, reviver, history_limit=2)
    yield manager
    manager.close()


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    """Joining sends the most recent messages, oldest first."""

    @pytest.mark.asyncio
    async def test_latest_messages_oldest_first(self, store, reviver, router, people) -> None:
        await _message(store, "d1", "u1", "one", 1)
        await _message(store, "d1", "u2", "two", 2)
        await _message(store, "d1", "u1", "three", 3)
        await _message(store, "d2", "u1", "elsewhere", 4)

        room = ChatRoom("d1", router, store, reviver, history_limit=2)
        history = await room.history()
        assert [m["content"] for m in history] == ["two", "three"]
        assert history[0]["author"]["name"] == "Bob"

    @pytest.mark.asyncio
    async def test_join_sends_history(self, rooms, store, people) -> None:
        await _message(store, "d1", "u1", "hi", 1)
        conn = FakeConnection()
        await rooms.join("d1", "u2", conn)
        assert len(conn.sent) == 1
        assert [m["content"] for m in conn.sent[0]] == ["hi"]


# ---------------------------------------------------------------------------
# Live messages
# ---------------------------------------------------------------------------


class TestBroadcast:
    """New messages reach every member; the author sees a placeholder swap."""

    @pytest.mark.asyncio
    async def test_self_echo_is_remapped(self, rooms, store, people) -> None:
        alice, bob = FakeConnection(), FakeConnection()
        await rooms.join("d1", "u1", alice)
        await rooms.join("d1", "u2", bob)

        message_id = await _message(store, "d1", "u1", "hello")
        await wait_for(lambda: len(alice.sent) == 2 and len(bob.sent) == 2)

        own = alice.sent[1]
        assert own["type"] == "update"
        assert own["docId"] == PLACEHOLDER_ID
        assert own["docBefore"] == {"id": PLACEHOLDER_ID}
        assert own["docAfter"]["id"] == message_id
        assert own["docAfter"]["author"]["name"] == "Alice"

        theirs = bob.sent[1]
        assert theirs["type"] == "insert"
        assert theirs["docId"] == message_id

    @pytest.mark.asyncio
    async def test_other_discussions_are_not_relayed(self, rooms, store, people) -> None:
        conn = FakeConnection()
        await rooms.join("d1", "u1", conn)
        await _message(store, "d2", "u2", "elsewhere")
        mine = await _message(store, "d1", "u2", "here")
        await wait_for(lambda: len(conn.sent) == 2)
        assert conn.sent[1]["docId"] == mine

    @pytest.mark.asyncio
    async def test_failed_send_drops_member(self, rooms, store, people) -> None:
        good = FakeConnection()
        await rooms.join("d1", "u1", good)
        flaky = FakeConnection()
        await rooms.join("d1", "u2", flaky)
        flaky.fail = True

        await _message(store, "d1", "u1", "hello")
        await wait_for(lambda: len(good.sent) == 2)
        await wait_for(lambda: "u2" not in rooms.rooms["d1"].members)

    def test_personalize(self) -> None:
        insert = Change.insert({"id": "m1", "authorId": "u1"})
        assert ChatRoom.personalize(insert, "u2") is insert
        swapped = ChatRoom.personalize(insert, "u1")
        assert swapped.type == ChangeType.UPDATE
        assert swapped.doc_id == PLACEHOLDER_ID

        update = Change.update({"id": "m1", "authorId": "u1"}, {"id": "m1", "authorId": "u1"})
        assert ChatRoom.personalize(update, "u1") is update


# ---------------------------------------------------------------------------
# Room lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """One subscription per occupied room."""

    @pytest.mark.asyncio
    async def test_last_leave_releases_subscription(self, rooms, router, people) -> None:
        await rooms.join("d1", "u1", FakeConnection())
        await rooms.join("d1", "u2", FakeConnection())
        assert router.subscriber_count("messages") == 1

        rooms.leave("d1", "u1")
        assert router.subscriber_count("messages") == 1
        rooms.leave("d1", "u2")
        assert router.subscriber_count("messages") == 0
        assert "d1" not in rooms.rooms

    @pytest.mark.asyncio
    async def test_rejoin_rebuilds_room(self, rooms, store, router, people) -> None:
        await rooms.join("d1", "u1", FakeConnection())
        rooms.leave("d1", "u1")

        conn = FakeConnection()
        room = await rooms.join("d1", "u1", conn)
        assert room.is_open
        assert router.subscriber_count("messages") == 1

        await _message(store, "d1", "u2", "back")
        await wait_for(lambda: len(conn.sent) == 2)

    @pytest.mark.asyncio
    async def test_failed_first_join_leaves_nothing_behind(self, rooms, router, people) -> None:
        with pytest.raises(RuntimeError):
            await rooms.join("d1", "u1", FakeConnection(fail=True))
        assert "d1" not in rooms.rooms
        assert router.subscriber_count("messages") == 0

    @pytest.mark.asyncio
    async def test_leave_unknown_room(self, rooms) -> None:
        rooms.leave("nope", "u1")
        assert rooms.rooms == {}
