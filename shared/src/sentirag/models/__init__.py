"""SQLAlchemy ORM models for SentiRAG."""

from sentirag.models.base import Base
from sentirag.models.snapshot import Snapshot
from sentirag.models.embedding import EMBEDDING_DIM, EmbeddingRecord

__all__ = [
    "Base",
    "Snapshot",
    "EmbeddingRecord",
    "EMBEDDING_DIM",
]
