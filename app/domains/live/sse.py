import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional

from fastapi.encoders import jsonable_encoder

from app.core.errors import UpstreamFeedError
from app.domains.changes.entities import Change
from app.domains.changes.router import ChangeRouter, Predicate, Subscription, SUBSCRIPTION_CLOSED
from app.domains.documents.entities import Document, FilterArg, Order, as_list, Filter

logger = logging.getLogger(__name__)

PING = "ping"

_HEARTBEAT = object()


def format_sse(payload) -> str:
    """Кадр SSE: event: message + JSON"""
    data = json.dumps(jsonable_encoder(payload))
    return f"event: message\ndata: {data}\n\n"


def member_of_discussion(user_id: str) -> Predicate:
    """Изменения обсуждений, в которых участвует пользователь"""
    def predicate(change: Change) -> bool:
        return any(
            user_id in (doc.get("userIds") or [])
            for doc in (change.doc_before, change.doc_after) if doc is not None
        )
    return predicate


def addressed_to(user_id: str) -> Predicate:
    """Изменения уведомлений, адресованных пользователю"""
    def predicate(change: Change) -> bool:
        return any(
            user_id in (doc.get("toIds") or [])
            for doc in (change.doc_before, change.doc_after) if doc is not None
        )
    return predicate


class LiveSession:
    """Долгоживущая SSE-подписка клиента.

    Сначала отправляет снимок подходящих документов, затем изменения из
    канала коллекции, отфильтрованные по области видимости клиента.
    Пинг отправляется с фиксированным интервалом независимо от трафика.
    При отключении клиента таймер и подписка освобождаются.
    """

    def __init__(
        self,
        router: ChangeRouter,
        store,
        reviver,
        collection: str,
        scope: Predicate,
        snapshot_filters: FilterArg = None,
        order: Optional[Order] = Order("date", desc=True),
        heartbeat_interval: float = 30.0,
        name: str = "",
    ):
        self.router = router
        self.store = store
        self.reviver = reviver
        self.collection = collection
        self.scope = scope
        self.snapshot_filters: List[Filter] = as_list(snapshot_filters)
        self.order = order
        self.heartbeat_interval = heartbeat_interval
        self.name = name or f"sse:{collection}"
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=router.buffer_size)
        self._subscription: Optional[Subscription] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def heartbeat(self) -> Optional[asyncio.Task]:
        return self._heartbeat

    async def open(self) -> List[Document]:
        """Подписка и снимок текущего состояния"""
        if self._subscription is not None or self._closed:
            raise RuntimeError(f"Live session '{self.name}' was already opened")
        # Подписываемся до запроса снимка, чтобы не потерять изменения между ними
        self._subscription = self.router.subscribe(
            self.collection, predicate=self.scope, queue=self._outbox, name=self.name
        )
        self._heartbeat = asyncio.create_task(self._beat(), name=f"{self.name}:heartbeat")
        try:
            docs = await self.store.get_many(self.collection, self.order, self.snapshot_filters)
            return await self.reviver.revive_many(self.collection, docs)
        except Exception:
            self.close()
            raise

    async def events(self) -> AsyncIterator[str]:
        """Генератор кадров SSE для StreamingResponse"""
        try:
            snapshot = await self.open()
            yield format_sse(snapshot)
            while not self._closed:
                item = await self._outbox.get()
                if item is _HEARTBEAT:
                    yield format_sse(PING)
                elif item is SUBSCRIPTION_CLOSED:
                    return
                elif isinstance(item, UpstreamFeedError):
                    logger.warning(f"Live session '{self.name}' ended: {item}")
                    return
                else:
                    yield format_sse(item.to_payload())
        finally:
            self.close()

    def close(self) -> None:
        """Освобождение таймера и подписки, повторный вызов безопасен"""
        if self._closed:
            return
        self._closed = True
        if self._heartbeat is not None:
            self._heartbeat.cancel()
        if self._subscription is not None:
            self._subscription.unsubscribe()
        logger.debug(f"Live session '{self.name}' closed")

    async def _beat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self._outbox.put_nowait(_HEARTBEAT)
            except asyncio.QueueFull:
                logger.debug(f"Live session '{self.name}' is not reading, ping skipped")


def discussions_session(runtime, user_id: str) -> LiveSession:
    """Обсуждения пользователя"""
    return LiveSession(
        runtime.router,
        runtime.store,
        runtime.reviver,
        collection="discussions",
        scope=member_of_discussion(user_id),
        snapshot_filters=Filter("userIds", "in", [user_id]),
        heartbeat_interval=runtime.settings.sse_heartbeat_seconds,
        name=f"sse:discussions:{user_id}",
    )


def notifications_session(runtime, user_id: str) -> LiveSession:
    """Уведомления пользователя"""
    return LiveSession(
        runtime.router,
        runtime.store,
        runtime.reviver,
        collection="notifications",
        scope=addressed_to(user_id),
        snapshot_filters=Filter("toIds", "in", [user_id]),
        heartbeat_interval=runtime.settings.sse_heartbeat_seconds,
        name=f"sse:notifications:{user_id}",
    )
