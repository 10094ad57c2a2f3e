from app.db.models.document import DocumentRecord

__all__ = [
    "DocumentRecord",
]
