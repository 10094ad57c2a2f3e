import logging
from typing import Optional

from app.core.config import Settings
from app.core.db import create_session_factory
from app.db.repositories.document_repository import DocumentStore
from app.domains.changes.router import ChangeRouter
from app.domains.live.chat import ChatRoomManager
from app.domains.revivers.services import Reviver
from app.domains.triggers.services import SocialTriggers, TriggerRunner
from app.infrastructure.uploads import LocalBlobStore

logger = logging.getLogger(__name__)


class Runtime:
    """Общие объекты процесса: хранилище, маршрутизатор изменений, триггеры, чаты.

    Создаётся один раз при старте приложения и передаётся в обработчики
    явно через ``app.state``.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[DocumentStore] = None,
        blobs: Optional[LocalBlobStore] = None,
    ):
        self.settings = settings
        if store is None:
            engine, session_factory = create_session_factory(settings.database_url, settings.database_echo)
            store = DocumentStore(session_factory, engine, watch_buffer_size=settings.watch_buffer_size)
        self.store = store
        self.blobs = blobs or LocalBlobStore(settings.uploads_dir, settings.max_upload_size_mb)
        self.reviver = Reviver(self.store)
        self.router = ChangeRouter(self.store, self.reviver, buffer_size=settings.subscriber_buffer_size)
        self.triggers = TriggerRunner(self.router)
        SocialTriggers(
            self.store,
            self.blobs,
            retry_attempts=settings.trigger_retry_attempts,
            retry_delay=settings.trigger_retry_delay,
            excerpt_length=settings.notification_excerpt_length,
        ).bind(self.triggers)
        self.rooms = ChatRoomManager(
            self.router, self.store, self.reviver, history_limit=settings.chat_history_limit
        )
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        await self.store.init_schema()
        self.triggers.start()
        self._started = True
        logger.info("Runtime started")

    async def stop(self) -> None:
        self.rooms.close()
        await self.triggers.stop()
        await self.router.close()
        await self.store.close()
        self._started = False
        logger.info("Runtime stopped")
