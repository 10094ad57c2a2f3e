import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from app.domains.changes.entities import Change
from app.domains.documents.entities import Document, Filter

logger = logging.getLogger(__name__)

FROM_NAME_PLACEHOLDER = "@@from.name@@"
UNKNOWN_AUTHOR_NAME = "Someone"


def missing_marker(doc_id: str) -> Document:
    """Явная отметка о документе, на который ссылаются, но которого уже нет"""
    return {"id": doc_id, "missing": True}


def is_missing(doc: Optional[Document]) -> bool:
    return bool(doc) and doc.get("missing") is True


@dataclass(frozen=True)
class Relation:
    """Ссылочное поле документа и коллекция, на которую оно указывает"""
    field: str
    target: str

    @property
    def many(self) -> bool:
        return self.field.endswith("Ids")

    @property
    def name(self) -> str:
        # authorId -> author, userIds -> users
        if self.many:
            return self.field[:-3] + "s"
        return self.field[:-2]

    def ids(self, doc: Document) -> List[str]:
        value = doc.get(self.field)
        if value is None:
            return []
        return list(value) if self.many else [value]


@dataclass
class CollectionSchema:
    relations: List[Relation] = field(default_factory=list)
    finalize: Optional[Callable[[Document], Document]] = None


def _fill_from_name(doc: Document) -> Document:
    sender = doc.get("from") or {}
    name = sender.get("name") or UNKNOWN_AUTHOR_NAME
    content = doc.get("content")
    if isinstance(content, str):
        doc["content"] = content.replace(FROM_NAME_PLACEHOLDER, name)
    return doc


DEFAULT_SCHEMAS: Dict[str, CollectionSchema] = {
    "notifications": CollectionSchema([Relation("fromId", "users")], finalize=_fill_from_name),
    "discussions": CollectionSchema([Relation("userIds", "users"), Relation("lastMessageId", "messages")]),
    "messages": CollectionSchema([Relation("authorId", "users")]),
    "ideas": CollectionSchema([Relation("authorId", "users"), Relation("goalIds", "goals")]),
    "comments": CollectionSchema([Relation("authorId", "users")]),
}


class Reviver:
    """Обогащение документов связанными сущностями.

    Для пачки документов выполняется один запрос на каждую коллекцию,
    на которую ссылаются документы, независимо от размера пачки.
    Связи второго уровня (например, автор последнего сообщения
    обсуждения) собираются в тот же запрос к коллекции. Исходные
    документы не изменяются.
    """

    def __init__(self, store, schemas: Optional[Dict[str, CollectionSchema]] = None):
        self.store = store
        self.schemas = dict(DEFAULT_SCHEMAS if schemas is None else schemas)

    def relations_of(self, collection: str) -> List[Relation]:
        schema = self.schemas.get(collection)
        return schema.relations if schema else []

    async def revive(self, collection: str, doc: Document) -> Document:
        """Обогащение одного документа"""
        return (await self.revive_many(collection, [doc]))[0]

    async def revive_many(self, collection: str, docs: List[Document]) -> List[Document]:
        """Обогащение пачки документов"""
        relations = self.relations_of(collection)
        if not docs or not relations:
            return [dict(d) for d in docs]

        # Сначала коллекции, у которых есть свои связи: их ссылки попадут в общий запрос
        nested_targets = {r.target for r in relations if self.relations_of(r.target)}
        fetched: Dict[str, Dict[str, Document]] = {}
        for target in sorted(nested_targets):
            wanted = self._collect_ids(docs, [r for r in relations if r.target == target])
            fetched[target] = await self._lookup(target, wanted.get(target, set()))

        wanted: Dict[str, Set[str]] = defaultdict(set)
        for target, ids in self._collect_ids(
            docs, [r for r in relations if r.target not in nested_targets]
        ).items():
            wanted[target] |= ids
        for target in nested_targets:
            for nested_target, ids in self._collect_ids(
                fetched[target].values(), self.relations_of(target)
            ).items():
                wanted[nested_target] |= ids

        for target, ids in wanted.items():
            fetched[target] = await self._lookup(target, ids)

        # Вложенные документы собираем из уже загруженных данных
        for target in nested_targets:
            fetched[target] = {
                doc_id: self._assemble(target, doc, fetched)
                for doc_id, doc in fetched[target].items()
            }

        return [self._assemble(collection, doc, fetched) for doc in docs]

    async def revive_change(self, collection: str, change: Change) -> Change:
        """Обогащение присутствующих сторон изменения"""
        present = [d for d in (change.doc_before, change.doc_after) if d is not None]
        revived = iter(await self.revive_many(collection, present))
        before = next(revived) if change.doc_before is not None else None
        after = next(revived) if change.doc_after is not None else None
        return change.with_documents(before, after)

    # private
    # ----------------------------------------------

    @staticmethod
    def _collect_ids(docs: Iterable[Document], relations: List[Relation]) -> Dict[str, Set[str]]:
        wanted: Dict[str, Set[str]] = defaultdict(set)
        for doc in docs:
            if is_missing(doc):
                continue
            for relation in relations:
                wanted[relation.target].update(relation.ids(doc))
        return wanted

    async def _lookup(self, collection: str, ids: Set[str]) -> Dict[str, Document]:
        if not ids:
            return {}
        docs = await self.store.get_many(
            collection, filters=Filter("id", "in", sorted(ids))
        )
        found = {d["id"]: d for d in docs}
        dangling = ids - found.keys()
        if dangling:
            logger.debug(f"{len(dangling)} dangling references to '{collection}'")
        return found

    def _assemble(self, collection: str, doc: Document, fetched: Dict[str, Dict[str, Document]]) -> Document:
        result = dict(doc)
        schema = self.schemas.get(collection)
        if schema is None or is_missing(doc):
            return result
        for relation in schema.relations:
            lookup = fetched.get(relation.target, {})
            resolved: Any
            if relation.many:
                resolved = [lookup.get(i) or missing_marker(i) for i in relation.ids(doc)]
            elif doc.get(relation.field) is None:
                resolved = None
            else:
                ref = doc[relation.field]
                resolved = lookup.get(ref) or missing_marker(ref)
            result[relation.name] = resolved
        if schema.finalize is not None:
            result = schema.finalize(result)
        return result
