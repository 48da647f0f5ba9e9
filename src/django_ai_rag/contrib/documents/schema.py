"""
Schema definitions for the document pipeline.

This module contains the plain data structures passed between the chunker, the
embedding service, the vector store, retrieval and prompt building. None of them are
persisted directly; the Django models in ``models.py`` are the durable form.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextSlice:
    """A ``text[start:end]`` span produced by a chunk transformer."""

    start: int
    end: int
    content: str

    def __len__(self):
        return self.end - self.start


@dataclass
class Chunk:
    """
    A chunk of a document's parsed text.

    ``start_offset`` and ``end_offset`` are character offsets into the document
    content, so overlapping chunks can be stitched back together exactly.
    """

    id: str
    document_id: str
    chunk_index: int
    content: str
    start_offset: int
    end_offset: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def length(self) -> int:
        return len(self.content)

    @classmethod
    def from_model(cls, instance) -> "Chunk":
        return cls(
            id=str(instance.pk),
            document_id=str(instance.document_id),
            chunk_index=instance.chunk_index,
            content=instance.content,
            start_offset=instance.start_offset,
            end_offset=instance.end_offset,
            metadata=dict(instance.metadata or {}),
        )


@dataclass
class VectorRecord:
    """A chunk together with its embedding, ready to be written to a vector store."""

    chunk_id: str
    document_id: str
    vector: list[float]
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    provider: str = ""


@dataclass
class SearchResult:
    """
    A single vector store hit.

    ``score`` is cosine similarity (``1 - cosine distance``). ``metadata`` carries the
    chunk text under ``content`` along with ``document_id`` and ``chunk_index``.
    """

    id: str
    score: float
    metadata: dict[str, Any]


@dataclass
class RetrievedChunk:
    id: str
    document_id: str
    chunk_index: int
    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_search_result(cls, result: SearchResult) -> "RetrievedChunk":
        metadata = dict(result.metadata)
        return cls(
            id=result.id,
            document_id=str(metadata.pop("document_id", "")),
            chunk_index=int(metadata.pop("chunk_index", 0)),
            content=metadata.pop("content", ""),
            score=result.score,
            metadata=metadata,
        )


@dataclass
class RetrievalResult:
    query: str
    document_id: str
    chunks: list[RetrievedChunk]
    total_found: int
    cache_hit: bool
    elapsed_ms: float
    cached: bool = False


@dataclass
class VectorizedQuery:
    query: str
    vector: list[float]
    cache_hit: bool


@dataclass
class BuiltPrompt:
    system_prompt: str
    estimated_tokens: int
    chunks: list[RetrievedChunk]


@dataclass
class PromptValidation:
    valid: bool
    total_tokens: int
    max_tokens: int


@dataclass
class DeletionResult:
    """
    Outcome of deleting a document across the vector store, blob storage and database.

    ``vectors`` and ``database`` failures make the deletion unsuccessful; a blob
    storage failure only adds a warning.
    """

    document_id: str
    found: bool = True
    vectors: bool = False
    storage: bool = False
    database: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.found and self.vectors and self.database
