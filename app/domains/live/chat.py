import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi.encoders import jsonable_encoder

from app.core.errors import UpstreamFeedError
from app.domains.changes.entities import Change, ChangeType
from app.domains.changes.router import ChangeRouter, Subscription
from app.domains.documents.entities import Document, Filter, Order

logger = logging.getLogger(__name__)

# Клиент заменяет оптимистично добавленное сообщение с этим id
PLACEHOLDER_ID = "placeholder"


class ChatRoom:
    """Комната обсуждения: участники и одна подписка на сообщения комнаты"""

    def __init__(
        self,
        discussion_id: str,
        router: ChangeRouter,
        store,
        reviver,
        history_limit: int = 100,
        on_empty: Optional[Callable[["ChatRoom"], None]] = None,
    ):
        self.discussion_id = discussion_id
        self.router = router
        self.store = store
        self.reviver = reviver
        self.history_limit = history_limit
        self.members: Dict[str, Any] = {}  # user id -> соединение
        self.subscription: Optional[Subscription] = None
        self._relay_task: Optional[asyncio.Task] = None
        self._on_empty = on_empty
        self._joining = 0

    @property
    def is_empty(self) -> bool:
        # пока кто-то входит, комната не считается пустой
        return not self.members and not self._joining

    @property
    def is_open(self) -> bool:
        return self.subscription is not None and self.subscription.active

    async def join(self, user_id: str, connection) -> None:
        """Отправка истории и регистрация соединения"""
        self._joining += 1
        try:
            history = await self.history()
            await self._send(connection, history)
            self.members[user_id] = connection
        finally:
            self._joining -= 1
        logger.info(f"User {user_id} joined chat room {self.discussion_id}")

    def open(self) -> None:
        """Подписка на сообщения комнаты"""
        if self.subscription is not None:
            return
        self.subscription = self.router.subscribe(
            "messages", predicate=self._belongs_here, name=f"chat:{self.discussion_id}"
        )
        self._relay_task = asyncio.create_task(self._relay(), name=f"chat:{self.discussion_id}")

    def leave(self, user_id: str) -> None:
        if self.members.pop(user_id, None) is not None:
            logger.info(f"User {user_id} left chat room {self.discussion_id}")
        if self.is_empty and self._on_empty is not None:
            self._on_empty(self)

    def close(self) -> None:
        """Отписка от сообщений, вызывается при опустевшей комнате"""
        if self.subscription is not None:
            self.subscription.unsubscribe()
        if self._relay_task is not None and self._relay_task is not asyncio.current_task():
            self._relay_task.cancel()
        logger.info(f"Chat room {self.discussion_id} closed")

    async def history(self) -> List[Document]:
        """Последние N сообщений от старых к новым"""
        docs = await self.store.get_many(
            "messages",
            Order("date", desc=True),
            Filter("discussionId", "eq", self.discussion_id),
            limit=self.history_limit,
        )
        docs.reverse()
        return await self.reviver.revive_many("messages", docs)

    @staticmethod
    def personalize(change: Change, user_id: str) -> Change:
        """Собственная вставка приходит автору как обновление заглушки"""
        if change.type == ChangeType.INSERT and change.doc_after.get("authorId") == user_id:
            return Change(
                ChangeType.UPDATE,
                PLACEHOLDER_ID,
                {"id": PLACEHOLDER_ID},
                change.doc_after,
            )
        return change

    # private
    # ----------------------------------------------

    def _belongs_here(self, change: Change) -> bool:
        return change.document.get("discussionId") == self.discussion_id

    async def _relay(self) -> None:
        try:
            async for change in self.subscription:
                await self._broadcast(change)
        except UpstreamFeedError as exc:
            logger.error(f"Chat room {self.discussion_id} lost its message feed: {exc}")

    async def _broadcast(self, change: Change) -> None:
        for user_id, connection in list(self.members.items()):
            payload = self.personalize(change, user_id).to_payload()
            try:
                await self._send(connection, payload)
            except Exception as exc:
                logger.warning(f"Dropping user {user_id} from chat room {self.discussion_id}: {exc}")
                self.leave(user_id)

    @staticmethod
    async def _send(connection, payload) -> None:
        await connection.send_text(json.dumps(jsonable_encoder(payload)))


class ChatRoomManager:
    """Комнаты по id обсуждения"""

    def __init__(self, router: ChangeRouter, store, reviver, history_limit: int = 100):
        self.router = router
        self.store = store
        self.reviver = reviver
        self.history_limit = history_limit
        self.rooms: Dict[str, ChatRoom] = {}

    async def join(self, discussion_id: str, user_id: str, connection) -> ChatRoom:
        """Вход в комнату, комната создаётся при первом входе"""
        room = self.rooms.get(discussion_id)
        created = room is None
        if created:
            room = ChatRoom(
                discussion_id,
                self.router,
                self.store,
                self.reviver,
                history_limit=self.history_limit,
                on_empty=self._discard,
            )
            self.rooms[discussion_id] = room
        try:
            await room.join(user_id, connection)
        finally:
            if room.is_empty:
                self._discard(room)
            elif created:
                room.open()
        return room

    def leave(self, discussion_id: str, user_id: str) -> None:
        room = self.rooms.get(discussion_id)
        if room is not None:
            room.leave(user_id)

    def close(self) -> None:
        for room in list(self.rooms.values()):
            self._discard(room)

    def _discard(self, room: ChatRoom) -> None:
        if self.rooms.get(room.discussion_id) is room:
            del self.rooms[room.discussion_id]
        room.close()
