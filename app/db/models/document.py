from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.sql import func

from app.core.db import Base


class DocumentRecord(Base):
    """Документ коллекции, хранится как JSON"""
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(128), primary_key=True)
    body = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_documents_collection", "collection"),)
