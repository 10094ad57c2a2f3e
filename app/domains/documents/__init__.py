from app.domains.documents.entities import (
    Document, Order, Filter, Patch, FilterArg, PatchArg,
    make_cheer_id, make_vote_id, new_document_id, parse_document_path
)

__all__ = [
    "Document", "Order", "Filter", "Patch", "FilterArg", "PatchArg",
    "make_cheer_id", "make_vote_id", "new_document_id", "parse_document_path",
]
