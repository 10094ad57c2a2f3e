import re
import uuid
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

from app.core.errors import ValidationError

Document = Dict[str, Any]

FILTER_OPERATORS = ("eq", "in", "nin", "regex")
PATCH_OPERATORS = ("set", "inc", "addToSet", "pull")

_ID_FIELD = re.compile(r"Ids?$")


@dataclass(frozen=True)
class Order:
    """Сортировка выборки"""
    field: str
    desc: bool = False


@dataclass(frozen=True)
class Filter:
    """Условие выборки по полю документа"""
    field: str
    operator: str
    value: Any
    pattern: Optional[Pattern] = dataclass_field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.operator not in FILTER_OPERATORS:
            raise ValidationError(f"Unknown filter operator: {self.operator}")
        if self.operator in ("in", "nin") and not isinstance(self.value, (list, tuple, set)):
            raise ValidationError(f"Operator '{self.operator}' expects a list value")
        if self.operator == "regex":
            try:
                compiled = re.compile(str(self.value), re.IGNORECASE)
            except re.error as exc:
                raise ValidationError(f"Invalid regex '{self.value}': {exc}") from exc
            object.__setattr__(self, "pattern", compiled)

    @property
    def is_scalar_match(self) -> bool:
        """Условие eq по полю без суффикса Ids"""
        return self.operator == "eq" and not self.field.endswith("Ids")

    def matches(self, doc: Document) -> bool:
        """Проверка документа на соответствие условию"""
        value = doc.get(self.field)
        candidates = value if isinstance(value, list) else [value]

        if self.operator == "eq":
            return any(c == self.value for c in candidates)
        if self.operator == "in":
            return any(c in self.value for c in candidates)
        if self.operator == "nin":
            return not any(c in self.value for c in candidates)
        # regex, регистр не учитывается
        return any(isinstance(c, str) and self.pattern.search(c) for c in candidates)


@dataclass(frozen=True)
class Patch:
    """Частичное изменение поля документа"""
    field: str
    operator: str
    value: Any

    def __post_init__(self):
        if self.field == "id":
            raise ValidationError("id field can't be patched")
        if self.operator not in PATCH_OPERATORS:
            raise ValidationError(f"Unknown patch operator: {self.operator}")


FilterArg = Union[Filter, Sequence[Filter], None]
PatchArg = Union[Patch, Sequence[Patch]]


def as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def matches_all(doc: Document, filters: Iterable[Filter]) -> bool:
    return all(f.matches(doc) for f in filters)


def is_id_field(field: str) -> bool:
    """Поля вида authorId / goalIds ссылаются на другие документы"""
    return field != "id" and bool(_ID_FIELD.search(field))


def check_id_fields(payload: Document) -> None:
    """Ссылочные поля должны содержать строки (или списки строк для ...Ids)"""
    for key, value in payload.items():
        if not is_id_field(key) or value is None:
            continue
        if key.endswith("Ids"):
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValidationError(f"Field '{key}' must be a list of ids")
        elif not isinstance(value, str):
            raise ValidationError(f"Field '{key}' must be an id string")


def parse_document_path(path: str) -> Tuple[str, str]:
    """Разбор пути вида 'collection/docId'"""
    parts = [p for p in path.split("/") if p]
    if len(parts) != 2:
        raise ValidationError(f"path '{path}' should yield 2 non-empty elements when split to '/'")
    return parts[0], parts[1]


def new_document_id() -> str:
    return uuid.uuid4().hex[:24]


def make_cheer_id(idea_id: str, user_id: str) -> str:
    return f"{idea_id}_{user_id}"


def make_vote_id(comment_id: str, user_id: str) -> str:
    return f"{comment_id}_{user_id}"


def sort_documents(docs: List[Document], order: Optional[Order]) -> List[Document]:
    """Сортировка с документами без поля в конце"""
    if order is None:
        return docs
    present = [d for d in docs if d.get(order.field) is not None]
    absent = [d for d in docs if d.get(order.field) is None]
    present.sort(key=lambda d: d[order.field], reverse=order.desc)
    return present + absent


def apply_patches(doc: Document, patches: Sequence[Patch]) -> Document:
    """Применение патчей к копии документа"""
    result = dict(doc)
    for patch in patches:
        current = result.get(patch.field)
        if patch.operator == "set":
            result[patch.field] = patch.value
        elif patch.operator == "inc":
            if current is not None and not isinstance(current, (int, float)):
                raise ValidationError(f"Cannot increment non-numeric field '{patch.field}'")
            result[patch.field] = (current or 0) + patch.value
        elif patch.operator == "addToSet":
            items = list(current or [])
            if patch.value not in items:
                items.append(patch.value)
            result[patch.field] = items
        elif patch.operator == "pull":
            result[patch.field] = [
                item for item in (current or []) if not _pull_matches(item, patch.value)
            ]
    return result


def _pull_matches(item: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and isinstance(item, dict):
        return all(item.get(k) == v for k, v in condition.items())
    return item == condition
