from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from django_ai_rag.conf import get_setting
from django_ai_rag.exceptions import VectorSearchError

from ..schema import SearchResult, VectorRecord


class VectorStore(ABC):
    """
    Base class for vector storage backends.

    Subclasses implement ``fetch_candidates``, returning the nearest records by
    cosine similarity. ``search`` over-fetches ``overfetch * top_k`` candidates, drops
    anything below ``min_score`` and trims to ``top_k``. Any backend failure during a
    search is raised as ``VectorSearchError`` rather than reported as no results.
    """

    def __init__(self, *, overfetch: int | None = None):
        self.overfetch = overfetch or get_setting("SEARCH_OVERFETCH")

    def upsert(self, record: VectorRecord) -> None:
        """Store or replace a single record."""
        self.upsert_batch([record])

    @abstractmethod
    def upsert_batch(self, records: Sequence[VectorRecord]) -> None:
        """Store records, replacing any existing record with the same chunk id."""
        pass

    def search(
        self,
        vector: Sequence[float],
        *,
        top_k: int,
        min_score: float = 0.0,
        owner_id=None,
        document_id=None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []

        try:
            candidates = list(
                self.fetch_candidates(
                    vector,
                    limit=top_k * self.overfetch,
                    owner_id=owner_id,
                    document_id=document_id,
                )
            )
        except VectorSearchError:
            raise
        except Exception as e:
            raise VectorSearchError(f"Vector search failed: {e}") from e

        results = [candidate for candidate in candidates if candidate.score >= min_score]
        results.sort(
            key=lambda result: (-result.score, result.metadata.get("chunk_index", 0))
        )
        return results[:top_k]

    @abstractmethod
    def fetch_candidates(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        owner_id=None,
        document_id=None,
    ) -> Iterable[SearchResult]:
        """Return up to ``limit`` records nearest to ``vector``, most similar first."""
        pass

    def delete(self, chunk_id: str) -> int:
        return self.delete_batch([chunk_id])

    @abstractmethod
    def delete_batch(self, chunk_ids: Iterable[str]) -> int:
        """Delete records by chunk id. Returns the number removed."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear the vector store."""
        ...
