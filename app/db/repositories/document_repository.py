import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, delete

from app.core.db import Base
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.models.document import DocumentRecord
from app.domains.changes.entities import Change
from app.domains.changes.feed import ChangeStream
from app.domains.documents.entities import (
    Document, Filter, FilterArg, Order, PatchArg,
    apply_patches, as_list, check_id_fields, matches_all,
    new_document_id, parse_document_path, sort_documents,
)

logger = logging.getLogger(__name__)

# Поля с датами в ISO-формате: строковый порядок совпадает с хронологическим
SQL_ORDER_FIELDS = ("date",)


class DocumentStore:
    """Документное хранилище поверх SQLAlchemy с потоком изменений.

    Каждая коллекция хранится в общей таблице ``documents``. Запись
    выполняется под общей блокировкой, изменение публикуется наблюдателям
    сразу после фиксации транзакции, поэтому порядок изменений в потоке
    совпадает с порядком фиксации.
    """

    def __init__(self, session_factory, engine=None, watch_buffer_size: int = 0):
        self._session_factory = session_factory
        self._engine = engine
        self._watch_buffer_size = watch_buffer_size
        self._write_lock = asyncio.Lock()
        self._watchers: Dict[str, List[ChangeStream]] = defaultdict(list)

    async def init_schema(self) -> None:
        """Создание таблиц, если их нет"""
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Закрытие всех наблюдателей и движка"""
        for streams in list(self._watchers.values()):
            for stream in list(streams):
                stream.close()
        self._watchers.clear()
        if self._engine is not None:
            await self._engine.dispose()

    # Чтение
    # ----------------------------------------------

    async def get_one(self, path: str) -> Document:
        """Получение документа по пути 'collection/id'"""
        collection, doc_id = parse_document_path(path)
        async with self._session_factory() as session:
            record = await session.get(DocumentRecord, (collection, doc_id))
        if record is None:
            raise NotFoundError(f"Document '{path}' not found")
        return dict(record.body)

    async def get_many(
        self,
        collection: str,
        order: Optional[Order] = None,
        filters: FilterArg = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Получение документов коллекции"""
        filters = as_list(filters)
        async with self._session_factory() as session:
            records = await self._select(session, collection, filters, order, limit)
        docs = [dict(r.body) for r in records]
        docs = [d for d in docs if matches_all(d, filters)]
        docs = sort_documents(docs, order)
        if limit is not None:
            docs = docs[:limit]
        return docs

    # Запись
    # ----------------------------------------------

    async def insert(self, collection: str, payload: Document) -> str:
        """Вставка документа, возвращает новый id"""
        if "id" in payload:
            raise ValidationError("id in insert payload is not allowed: use upsert instead")
        doc = self._encode(payload)
        doc["id"] = new_document_id()

        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(DocumentRecord(collection=collection, id=doc["id"], body=doc))
            self._publish(collection, Change.insert(doc))
        return doc["id"]

    async def upsert(self, path: str, payload: Document) -> None:
        """Замена документа целиком или создание с заданным id"""
        collection, doc_id = parse_document_path(path)
        if "id" in payload and str(payload["id"]) != doc_id:
            raise ConflictError(f"Payload id does not match endpoint id: {payload['id']} != {doc_id}")
        doc = self._encode({k: v for k, v in payload.items() if k != "id"})
        doc["id"] = doc_id

        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(DocumentRecord, (collection, doc_id))
                    if record is None:
                        session.add(DocumentRecord(collection=collection, id=doc_id, body=doc))
                        change = Change.insert(doc)
                    else:
                        before = dict(record.body)
                        record.body = doc
                        change = Change.update(before, doc)
            self._publish(collection, change)

    async def patch(self, path: str, patches: PatchArg) -> Document:
        """Частичное обновление документа, возвращает новое состояние"""
        collection, doc_id = parse_document_path(path)
        patches = as_list(patches)
        if not patches:
            raise ValidationError("No patches given")

        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(DocumentRecord, (collection, doc_id))
                    if record is None:
                        raise NotFoundError(f"Document '{path}' not found")
                    before = dict(record.body)
                    after = self._encode(apply_patches(before, patches))
                    record.body = after
            self._publish(collection, Change.update(before, after))
        return after

    async def delete(self, path: str) -> None:
        """Удаление документа по пути"""
        collection, doc_id = parse_document_path(path)
        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(DocumentRecord, (collection, doc_id))
                    if record is None:
                        raise NotFoundError(f"Document '{path}' not found")
                    before = dict(record.body)
                    await session.delete(record)
            self._publish(collection, Change.delete(before))

    async def delete_many(self, collection: str, filters: FilterArg) -> int:
        """Удаление документов по фильтру, возвращает количество удалённых"""
        filters = as_list(filters)
        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    records = await self._select(session, collection, filters)
                    docs = [dict(r.body) for r in records if matches_all(r.body, filters)]
                    if docs:
                        await session.execute(
                            delete(DocumentRecord)
                            .where(DocumentRecord.collection == collection)
                            .where(DocumentRecord.id.in_([d["id"] for d in docs]))
                        )
            for doc in docs:
                self._publish(collection, Change.delete(doc))
        logger.debug(f"Deleted {len(docs)} documents from '{collection}'")
        return len(docs)

    # Поток изменений
    # ----------------------------------------------

    def watch(self, collection: str, match: FilterArg = None) -> ChangeStream:
        """Подписка на изменения коллекции"""
        stream = ChangeStream(
            collection,
            as_list(match),
            buffer_size=self._watch_buffer_size,
            on_close=self._unwatch,
        )
        self._watchers[collection].append(stream)
        logger.debug(f"Watching '{collection}' ({len(self._watchers[collection])} watchers)")
        return stream

    def watcher_count(self, collection: str) -> int:
        return len(self._watchers.get(collection, []))

    def _unwatch(self, stream: ChangeStream) -> None:
        streams = self._watchers.get(stream.collection, [])
        if stream in streams:
            streams.remove(stream)
        if not streams:
            self._watchers.pop(stream.collection, None)

    def _publish(self, collection: str, change: Change) -> None:
        for stream in list(self._watchers.get(collection, [])):
            stream.push(change)

    # private
    # ----------------------------------------------

    async def _select(
        self,
        session,
        collection: str,
        filters: List[Filter],
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ):
        stmt = select(DocumentRecord).where(DocumentRecord.collection == collection)
        exact = True
        for f in filters:
            clause = self._clause(f)
            if clause is None:
                exact = False  # остаток фильтров проверяется в Python
            else:
                stmt = stmt.where(clause)

        # Сортировку и лимит можно отдать базе, только если все фильтры уже в SQL
        if exact:
            ordered = order is None
            if order is not None and order.field in SQL_ORDER_FIELDS:
                column = DocumentRecord.body[order.field].as_string()
                stmt = stmt.order_by((column.desc() if order.desc else column.asc()).nulls_last())
                ordered = True
            if ordered and limit is not None:
                stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        return result.scalars().all()

    @staticmethod
    def _clause(f: Filter):
        if f.field == "id":
            if f.operator == "eq":
                return DocumentRecord.id == f.value
            if f.operator == "in":
                return DocumentRecord.id.in_(list(f.value))
            if f.operator == "nin":
                return DocumentRecord.id.notin_(list(f.value))
            return None
        if f.is_scalar_match and isinstance(f.value, str):
            return DocumentRecord.body[f.field].as_string() == f.value
        return None

    @staticmethod
    def _encode(payload: Document) -> Document:
        check_id_fields(payload)
        return jsonable_encoder(payload)
