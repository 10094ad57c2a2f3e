"""Tests for Reviver enrichment."""

from __future__ import annotations

import pytest

from app.domains.changes.entities import Change
from app.domains.revivers.services import (
    FROM_NAME_PLACEHOLDER, Reviver, is_missing, missing_marker,
)

from tests.helpers import CountingStore


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestBatching:
    """One lookup per referenced collection, whatever the batch size."""

    @pytest.mark.asyncio
    async def test_ideas(self, store, people) -> None:
        await store.upsert("goals/g1", {"name": "Health"})
        await store.upsert("goals/g2", {"name": "Planet"})
        ideas = [
            {"id": f"i{n}", "authorId": "u1" if n % 2 else "u2", "goalIds": ["g1", "g2"]}
            for n in range(10)
        ]
        counting = CountingStore(store)
        revived = await Reviver(counting).revive_many("ideas", ideas)

        assert sorted(counting.calls) == ["goals", "users"]
        assert revived[1]["author"]["name"] == "Alice"
        assert revived[0]["author"]["name"] == "Bob"
        assert [g["name"] for g in revived[0]["goals"]] == ["Health", "Planet"]

    @pytest.mark.asyncio
    async def test_nested_references_share_the_user_lookup(self, store, people) -> None:
        await store.upsert("messages/m1", {"authorId": "u2", "content": "hey"})
        discussions = [
            {"id": "d1", "userIds": ["u1", "u2"], "lastMessageId": "m1"},
            {"id": "d2", "userIds": ["u1"], "lastMessageId": None},
        ]
        counting = CountingStore(store)
        revived = await Reviver(counting).revive_many("discussions", discussions)

        assert counting.calls == ["messages", "users"]
        assert [u["name"] for u in revived[0]["users"]] == ["Alice", "Bob"]
        assert revived[0]["lastMessage"]["author"]["name"] == "Bob"
        assert revived[1]["lastMessage"] is None

    @pytest.mark.asyncio
    async def test_empty_batch_does_no_io(self, store) -> None:
        counting = CountingStore(store)
        assert await Reviver(counting).revive_many("ideas", []) == []
        assert counting.calls == []

    @pytest.mark.asyncio
    async def test_collection_without_relations(self, store) -> None:
        counting = CountingStore(store)
        doc = {"id": "c1", "ideaId": "i1"}
        assert await Reviver(counting).revive("cheers", doc) == doc
        assert counting.calls == []


class TestMissingReferences:
    """Dangling references resolve to an explicit marker."""

    @pytest.mark.asyncio
    async def test_marker(self, store, people) -> None:
        idea = {"id": "i1", "authorId": "ghost", "goalIds": ["g404"]}
        revived = await Reviver(store).revive("ideas", idea)
        assert revived["author"] == missing_marker("ghost")
        assert is_missing(revived["author"])
        assert revived["goals"] == [{"id": "g404", "missing": True}]

    @pytest.mark.asyncio
    async def test_marker_is_not_expanded(self, store) -> None:
        counting = CountingStore(store)
        marker = missing_marker("m9")
        assert await Reviver(counting).revive("messages", marker) == marker
        assert counting.calls == []

    @pytest.mark.asyncio
    async def test_dangling_last_message(self, store, people) -> None:
        discussion = {"id": "d1", "userIds": ["u1"], "lastMessageId": "m404"}
        revived = await Reviver(store).revive("discussions", discussion)
        assert is_missing(revived["lastMessage"])
        assert "author" not in revived["lastMessage"]

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self, store, people) -> None:
        idea = {"id": "i1", "authorId": "u1", "goalIds": []}
        revived = await Reviver(store).revive("ideas", idea)
        assert idea == {"id": "i1", "authorId": "u1", "goalIds": []}
        assert revived is not idea
        assert revived["authorId"] == "u1"


class TestNotifications:
    """Sender name substitution."""

    @pytest.mark.asyncio
    async def test_sender_name(self, store, people) -> None:
        notification = {"id": "n1", "fromId": "u2", "toIds": ["u1"],
                        "content": f"{FROM_NAME_PLACEHOLDER} cheers for Bikes"}
        revived = await Reviver(store).revive("notifications", notification)
        assert revived["content"] == "Bob cheers for Bikes"
        assert revived["from"]["id"] == "u2"

    @pytest.mark.asyncio
    async def test_unknown_sender(self, store) -> None:
        notification = {"id": "n1", "fromId": "gone", "toIds": ["u1"],
                        "content": f"{FROM_NAME_PLACEHOLDER} cheers for Bikes"}
        revived = await Reviver(store).revive("notifications", notification)
        assert revived["content"] == "Someone cheers for Bikes"


class TestReviveChange:
    """Both sides of a change are revived together."""

    @pytest.mark.asyncio
    async def test_update(self, store, people) -> None:
        counting = CountingStore(store)
        change = Change.update(
            {"id": "c1", "authorId": "u1", "rating": 0},
            {"id": "c1", "authorId": "u1", "rating": 1},
        )
        revived = await Reviver(counting).revive_change("comments", change)
        assert counting.calls == ["users"]
        assert revived.doc_before["author"]["name"] == "Alice"
        assert revived.doc_after["rating"] == 1
        assert revived.type == change.type and revived.doc_id == "c1"

    @pytest.mark.asyncio
    async def test_delete(self, store, people) -> None:
        change = Change.delete({"id": "c1", "authorId": "u2"})
        revived = await Reviver(store).revive_change("comments", change)
        assert revived.doc_after is None
        assert revived.doc_before["author"]["name"] == "Bob"
