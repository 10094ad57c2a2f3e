import asyncio
import logging
from typing import Callable, List, Optional

from app.core.errors import UpstreamFeedError
from app.domains.changes.entities import Change, ChangeType
from app.domains.documents.entities import Filter, matches_all

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChangeStream:
    """Поток изменений одной коллекции.

    Регистрируется в хранилище через ``DocumentStore.watch`` и получает
    изменения в порядке фиксации. Фильтр применяется к состоянию после
    изменения, для удалений к состоянию до него. Ошибка потока
    передаётся потребителю как ``UpstreamFeedError``, после чего поток
    закрыт; переподключение остаётся за вызывающим кодом.
    """

    def __init__(
        self,
        collection: str,
        match: Optional[List[Filter]] = None,
        buffer_size: int = 0,
        on_close: Optional[Callable[["ChangeStream"], None]] = None,
    ):
        self.collection = collection
        self.match = match or []
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, change: Change) -> bool:
        image = change.doc_before if change.type == ChangeType.DELETE else change.doc_after
        return matches_all(image, self.match)

    def push(self, change: Change) -> None:
        """Вызывается хранилищем после фиксации изменения"""
        if self._closed or not self.accepts(change):
            return
        try:
            self._queue.put_nowait(change)
        except asyncio.QueueFull:
            logger.error(f"Change stream for '{self.collection}' overflowed, closing it")
            self.fail(UpstreamFeedError(f"change stream buffer overflow on '{self.collection}'"))

    def fail(self, error: BaseException) -> None:
        """Обрыв потока: ошибка дойдёт до потребителя"""
        if self._closed:
            return
        self._release()
        self._force_put(error)

    def close(self) -> None:
        """Освобождение регистрации в хранилище, повторный вызов безопасен"""
        if self._closed:
            return
        self._release()
        self._force_put(_CLOSED)

    def _release(self) -> None:
        self._closed = True
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close(self)

    def _force_put(self, item) -> None:
        # Терминальный элемент должен попасть в очередь даже при переполнении
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Change:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            if isinstance(item, UpstreamFeedError):
                raise item
            raise UpstreamFeedError(str(item)) from item
        return item

    async def __aenter__(self) -> "ChangeStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
