from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

Document = Dict[str, Any]


class ChangeType(str, Enum):
    """Типы изменений документа"""
    INSERT = "insert"
    UPDATE = "update"  # replace тоже сводится к update
    DELETE = "delete"


@dataclass(frozen=True)
class Change:
    """Изменение документа в модели до/после"""

    type: ChangeType
    doc_id: str
    doc_before: Optional[Document] = None
    doc_after: Optional[Document] = None

    def __post_init__(self):
        if self.type == ChangeType.INSERT and (self.doc_after is None or self.doc_before is not None):
            raise ValueError("insert change must carry docAfter only")
        if self.type == ChangeType.DELETE and (self.doc_before is None or self.doc_after is not None):
            raise ValueError("delete change must carry docBefore only")
        if self.type == ChangeType.UPDATE and (self.doc_before is None or self.doc_after is None):
            raise ValueError("update change must carry both docBefore and docAfter")

    @classmethod
    def insert(cls, doc: Document) -> "Change":
        return cls(ChangeType.INSERT, doc["id"], None, doc)

    @classmethod
    def update(cls, before: Document, after: Document) -> "Change":
        return cls(ChangeType.UPDATE, after["id"], before, after)

    @classmethod
    def delete(cls, doc: Document) -> "Change":
        return cls(ChangeType.DELETE, doc["id"], doc, None)

    @property
    def document(self) -> Document:
        """Последнее известное состояние документа"""
        return self.doc_after if self.doc_after is not None else self.doc_before

    def with_documents(self, before: Optional[Document], after: Optional[Document]) -> "Change":
        return Change(self.type, self.doc_id, before, after)

    def to_payload(self) -> Dict[str, Any]:
        """Представление изменения для клиентов"""
        return {
            "type": self.type.value,
            "docId": self.doc_id,
            "docBefore": self.doc_before,
            "docAfter": self.doc_after,
        }
