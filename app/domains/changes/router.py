import asyncio
import logging
from typing import Callable, Dict, List, Optional

from app.core.errors import UpstreamFeedError
from app.domains.changes.entities import Change

logger = logging.getLogger(__name__)

SUBSCRIPTION_CLOSED = object()

Predicate = Callable[[Change], bool]


class Subscription:
    """Подписка одного потребителя на канал коллекции.

    У каждой подписки своя очередь: доставка в неё не блокирует канал,
    а медленный потребитель не задерживает остальных.
    """

    def __init__(
        self,
        channel: "Channel",
        predicate: Optional[Predicate] = None,
        queue: Optional[asyncio.Queue] = None,
        name: str = "",
    ):
        self.channel = channel
        self.predicate = predicate
        self.queue = queue if queue is not None else asyncio.Queue(maxsize=channel.buffer_size)
        self.name = name or f"{channel.collection}-subscriber"
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, change: Change) -> None:
        """Вызывается каналом для каждого изменения"""
        if not self._active:
            return
        try:
            if self.predicate is not None and not self.predicate(change):
                return
            self.queue.put_nowait(change)
        except asyncio.QueueFull:
            logger.error(f"Subscriber '{self.name}' fell behind, closing its subscription")
            self.channel.remove(self)
            self.fail(UpstreamFeedError(f"subscriber buffer overflow on '{self.channel.collection}'"))
        except Exception:
            logger.exception(f"Delivery to subscriber '{self.name}' failed")

    def fail(self, error: UpstreamFeedError) -> None:
        if not self._active:
            return
        self._active = False
        self._force_put(error)

    def unsubscribe(self) -> None:
        """Отписка, повторный вызов ничего не делает"""
        if not self._active:
            return
        self._active = False
        self.channel.remove(self)
        self._force_put(SUBSCRIPTION_CLOSED)

    def _force_put(self, item) -> None:
        # Терминальный элемент вытесняет самые старые
        while True:
            try:
                self.queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Change:
        item = await self.queue.get()
        if item is SUBSCRIPTION_CLOSED:
            raise StopAsyncIteration
        if isinstance(item, UpstreamFeedError):
            raise item
        return item


class Channel:
    """Канал одной коллекции: один поток изменений хранилища на всех подписчиков"""

    def __init__(
        self,
        collection: str,
        store,
        reviver,
        on_failure: Callable[["Channel"], None],
        buffer_size: int = 0,
    ):
        self.collection = collection
        self.store = store
        self.reviver = reviver
        self.buffer_size = buffer_size
        self.subscribers: List[Subscription] = []
        self._on_failure = on_failure
        self._feed = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        # Регистрация в хранилище синхронная, чтобы не пропустить изменения после subscribe()
        self._feed = self.store.watch(self.collection)
        self._task = asyncio.create_task(self._pump(), name=f"change-channel:{self.collection}")
        logger.info(f"Change channel for '{self.collection}' started")

    def add(self, subscription: Subscription) -> None:
        self.subscribers.append(subscription)

    def remove(self, subscription: Subscription) -> None:
        if subscription in self.subscribers:
            self.subscribers.remove(subscription)

    async def close(self) -> None:
        self._closing = True
        if self._feed is not None:
            self._feed.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        for subscription in list(self.subscribers):
            subscription.unsubscribe()

    async def _pump(self) -> None:
        try:
            async for raw in self._feed:
                try:
                    change = await self.reviver.revive_change(self.collection, raw)
                except Exception:
                    logger.exception(
                        f"Failed to revive {raw.type.value} of '{self.collection}/{raw.doc_id}', delivering it as is"
                    )
                    change = raw
                # Одно оживление на канал, рассылка в порядке подписки
                for subscription in list(self.subscribers):
                    subscription.deliver(change)
            if not self._closing:
                raise UpstreamFeedError(f"change feed for '{self.collection}' ended")
        except UpstreamFeedError as exc:
            logger.error(f"Change feed for '{self.collection}' dropped: {exc}")
            for subscription in list(self.subscribers):
                subscription.fail(exc)
            self.subscribers.clear()
            self._on_failure(self)
        finally:
            self._feed.close()


class ChangeRouter:
    """Таблица каналов изменений по коллекциям.

    Канал запускается при первой подписке и живёт до ``close()``:
    набор наблюдаемых коллекций небольшой и постоянный. Если поток
    хранилища оборвался, подписчики получают ``UpstreamFeedError``,
    а канал убирается из таблицы; следующая подписка создаст новый.
    Очередь подписчика ограничена ``buffer_size`` (0 без ограничения),
    при переполнении подписка завершается с ``UpstreamFeedError``.
    """

    def __init__(self, store, reviver, buffer_size: int = 0):
        self.store = store
        self.reviver = reviver
        self.buffer_size = buffer_size
        self._channels: Dict[str, Channel] = {}

    def subscribe(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
        queue: Optional[asyncio.Queue] = None,
        name: str = "",
    ) -> Subscription:
        """Подписка на изменения коллекции"""
        channel = self._channels.get(collection)
        if channel is None:
            channel = Channel(collection, self.store, self.reviver, self._drop_channel, self.buffer_size)
            self._channels[collection] = channel
            channel.start()
        subscription = Subscription(channel, predicate, queue, name)
        channel.add(subscription)
        return subscription

    def subscriber_count(self, collection: str) -> int:
        channel = self._channels.get(collection)
        return len(channel.subscribers) if channel else 0

    def watched_collections(self) -> List[str]:
        return list(self._channels)

    async def close(self) -> None:
        """Остановка всех каналов"""
        channels, self._channels = list(self._channels.values()), {}
        for channel in channels:
            await channel.close()
        logger.info("Change router closed")

    def _drop_channel(self, channel: Channel) -> None:
        if self._channels.get(channel.collection) is channel:
            del self._channels[channel.collection]
