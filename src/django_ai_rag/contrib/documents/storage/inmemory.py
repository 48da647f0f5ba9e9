from typing import Iterable, Sequence

import numpy as np

from ..schema import SearchResult, VectorRecord
from .base import VectorStore


class InMemoryVectorStore(VectorStore):
    """Simple in-memory storage for testing and local development."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.records: dict[str, VectorRecord] = {}

    def upsert_batch(self, records: Sequence[VectorRecord]) -> None:
        """Store records in memory."""
        for record in records:
            self.records[str(record.chunk_id)] = record

    def _owned_document_ids(self, owner_id) -> set[str]:
        from ..models import Document

        return {
            str(pk)
            for pk in Document.objects.filter(owner_id=owner_id).values_list(
                "pk", flat=True
            )
        }

    def fetch_candidates(self, vector, *, limit, owner_id=None, document_id=None):
        query = np.asarray(vector, dtype=float)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        allowed_documents = (
            self._owned_document_ids(owner_id) if owner_id is not None else None
        )

        scored = []
        for record in self.records.values():
            if document_id is not None and str(record.document_id) != str(document_id):
                continue
            if allowed_documents is not None and str(record.document_id) not in allowed_documents:
                continue
            candidate = np.asarray(record.vector, dtype=float)
            candidate_norm = np.linalg.norm(candidate)
            if candidate_norm == 0:
                continue
            similarity = float(np.dot(query, candidate) / (query_norm * candidate_norm))
            scored.append((similarity, record))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SearchResult(
                id=str(record.chunk_id),
                score=similarity,
                metadata={
                    **record.metadata,
                    "content": record.content,
                    "document_id": str(record.document_id),
                },
            )
            for similarity, record in scored[:limit]
        ]

    def delete_batch(self, chunk_ids: Iterable[str]) -> int:
        """Delete records by their chunk ids."""
        deleted = 0
        for chunk_id in chunk_ids:
            if self.records.pop(str(chunk_id), None) is not None:
                deleted += 1
        return deleted

    def clear(self) -> None:
        self.records.clear()
