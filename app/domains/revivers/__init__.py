from app.domains.revivers.services import (
    Reviver, Relation, CollectionSchema, DEFAULT_SCHEMAS, missing_marker, is_missing
)

__all__ = [
    "Reviver", "Relation", "CollectionSchema", "DEFAULT_SCHEMAS",
    "missing_marker", "is_missing",
]
