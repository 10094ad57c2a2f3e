import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from app.core.errors import NotFoundError, UpstreamFeedError
from app.domains.changes.entities import Change, ChangeType
from app.domains.changes.router import ChangeRouter, Subscription
from app.domains.documents.entities import Document, Filter, Patch
from app.domains.revivers.services import FROM_NAME_PLACEHOLDER

logger = logging.getLogger(__name__)

IMG_SRC_PATTERN = re.compile(r'<img src="(?P<name>[\w.\-]+)">')

Handler = Callable[[Change], Awaitable[None]]


class TriggerRunner:
    """Запуск реактивных триггеров: одна подписка и одна задача на триггер"""

    def __init__(self, router: ChangeRouter):
        self.router = router
        self._handlers: List[Tuple[str, str, Handler]] = []
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []

    def register(self, collection: str, handler: Handler, name: Optional[str] = None) -> None:
        self._handlers.append((name or collection, collection, handler))

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        """Подписка всех триггеров, вызывается один раз при старте"""
        for name, collection, handler in self._handlers:
            # очередь триггера без ограничения: компенсирующие записи не теряются
            subscription = self.router.subscribe(collection, queue=asyncio.Queue(), name=f"trigger:{name}")
            self._subscriptions.append(subscription)
            self._tasks.append(asyncio.create_task(self._run(name, subscription, handler), name=f"trigger:{name}"))
        logger.info(f"Started {len(self._tasks)} reactive triggers")

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._tasks.clear()

    async def _run(self, name: str, subscription: Subscription, handler: Handler) -> None:
        try:
            async for change in subscription:
                try:
                    await handler(change)
                except Exception:
                    logger.exception(f"Trigger '{name}' failed on {change.type.value} of {change.doc_id}")
        except UpstreamFeedError as exc:
            # Переподключение не наша задача: триггер останавливается
            logger.error(f"Trigger '{name}' stopped, change feed dropped: {exc}")


class SocialTriggers:
    """Побочные эффекты изменений: счётчики, уведомления, каскадные удаления.

    Изменение считается уже зафиксированным: триггеры только досписывают
    компенсирующие изменения и ничего не откатывают. Эффекты одного
    изменения выполняются параллельно и ожидаются; ошибка одного эффекта
    не мешает остальным. Повтор при сбое ограничен, отсутствующий
    документ не повторяется.
    """

    def __init__(
        self,
        store,
        blobs,
        retry_attempts: int = 3,
        retry_delay: float = 0.2,
        excerpt_length: int = 200,
    ):
        self.store = store
        self.blobs = blobs
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.excerpt_length = excerpt_length

    def bind(self, runner: TriggerRunner) -> None:
        runner.register("cheers", self.on_cheer_change)
        runner.register("comments", self.on_comment_change)
        runner.register("votes", self.on_vote_change)
        runner.register("ideas", self.on_idea_change)

    # Обработчики
    # ----------------------------------------------

    async def on_cheer_change(self, change: Change) -> None:
        if change.type == ChangeType.INSERT:
            cheer = change.doc_after
            await self._effects(change, {
                "notify idea author": lambda: self._notify_idea_author(
                    cheer, lambda idea: f"{FROM_NAME_PLACEHOLDER} cheers for {idea.get('title', '')}"
                ),
                "increment supports": lambda: self._increment(f"ideas/{cheer['ideaId']}", "supports", 1),
            })
        elif change.type == ChangeType.DELETE:
            cheer = change.doc_before
            await self._effects(change, {
                "decrement supports": lambda: self._increment(f"ideas/{cheer['ideaId']}", "supports", -1),
            })

    async def on_comment_change(self, change: Change) -> None:
        if change.type == ChangeType.INSERT:
            comment = change.doc_after
            excerpt = self._excerpt(comment.get("content", ""))
            await self._effects(change, {
                "notify idea author": lambda: self._notify_idea_author(
                    comment,
                    lambda idea: f'{FROM_NAME_PLACEHOLDER} has commented on {idea.get("title", "")}: "{excerpt}"',
                ),
            })
        elif change.type == ChangeType.DELETE:
            await self._effects(change, {
                "delete votes": lambda: self.store.delete_many(
                    "votes", Filter("commentId", "eq", change.doc_id)
                ),
            })

    async def on_vote_change(self, change: Change) -> None:
        if change.type == ChangeType.INSERT:
            comment_id, delta = change.doc_after["commentId"], change.doc_after.get("value", 0)
        elif change.type == ChangeType.DELETE:
            comment_id, delta = change.doc_before["commentId"], -change.doc_before.get("value", 0)
        else:
            comment_id = change.doc_after["commentId"]
            delta = change.doc_after.get("value", 0) - change.doc_before.get("value", 0)
        if delta == 0:
            return
        await self._effects(change, {
            "adjust rating": lambda: self._increment(f"comments/{comment_id}", "rating", delta),
        })

    async def on_idea_change(self, change: Change) -> None:
        if change.type != ChangeType.DELETE:
            return
        idea = change.doc_before
        effects: Dict[str, Callable[[], Awaitable]] = {}
        for filename in self.uploads_of(idea):
            effects[f"delete upload {filename}"] = self._deleter(filename)
        effects["delete comments"] = lambda: self.store.delete_many(
            "comments", Filter("ideaId", "eq", change.doc_id)
        )
        await self._effects(change, effects)

    @staticmethod
    def uploads_of(idea: Document) -> List[str]:
        """Обложка и изображения из HTML-содержимого идеи"""
        names = []
        if idea.get("cover"):
            names.append(idea["cover"])
        for match in IMG_SRC_PATTERN.finditer(idea.get("content") or ""):
            names.append(match.group("name"))
        return list(dict.fromkeys(names))

    # private
    # ----------------------------------------------

    async def _notify_idea_author(self, doc: Document, content: Callable[[Document], str]) -> Optional[str]:
        idea = await self.store.get_one(f"ideas/{doc['ideaId']}")
        if doc.get("authorId") == idea.get("authorId"):
            return None  # не уведомляем автора о собственных действиях
        return await self.store.insert("notifications", {
            "fromId": doc["authorId"],
            "toIds": [idea["authorId"]],
            "date": datetime.now(timezone.utc),
            "readByIds": [],
            "content": content(idea),
        })

    async def _increment(self, path: str, field: str, value) -> None:
        await self.store.patch(path, Patch(field, "inc", value))

    def _deleter(self, filename: str) -> Callable[[], Awaitable]:
        async def delete_upload():
            await asyncio.to_thread(self.blobs.delete, filename)
        return delete_upload

    def _excerpt(self, text: str) -> str:
        if len(text) <= self.excerpt_length:
            return text
        return text[: self.excerpt_length].rstrip() + "..."

    async def _effects(self, change: Change, effects: Dict[str, Callable[[], Awaitable]]) -> None:
        names = list(effects)
        results = await asyncio.gather(
            *(self._with_retry(name, effects[name]) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Effect '{name}' for {change.type.value} of {change.doc_id} failed",
                    exc_info=result,
                )

    async def _with_retry(self, name: str, effect: Callable[[], Awaitable]):
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await effect()
            except NotFoundError as exc:
                logger.warning(f"Effect '{name}' skipped: {exc.detail}")
                return None
            except Exception as exc:
                if attempt == self.retry_attempts:
                    raise
                logger.warning(f"Effect '{name}' failed (attempt {attempt}): {exc}, retrying")
                await asyncio.sleep(self.retry_delay)
