from .base import VectorStore
from .inmemory import InMemoryVectorStore
from .pgvector import PgVectorStore

__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "PgVectorStore",
]
