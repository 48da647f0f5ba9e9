from typing import Iterable, Sequence

from django.db import transaction

from ..schema import SearchResult, VectorRecord
from .base import VectorStore


class PgVectorStore(VectorStore):
    """
    Vector storage using PostgreSQL with the pgvector extension.

    Records live in the ``ChunkEmbedding`` model, one row per chunk. Searches rank
    by cosine distance and can be limited to one owner (joined through the chunk's
    document) and to one document.

    Example:
        store = PgVectorStore()
        store.upsert_batch(records)
        store.search(query_vector, top_k=5, min_score=0.7, owner_id=user.pk)
    """

    update_fields = ["document", "content", "metadata", "vector", "provider", "updated_at"]

    @property
    def model(self):
        from ..models import ChunkEmbedding

        return ChunkEmbedding

    def upsert_batch(self, records: Sequence[VectorRecord]) -> None:
        """
        Insert or update records in one statement.

        Args:
            records: Records to store. Existing rows for the same chunk are overwritten.
        """
        if not records:
            return

        instances = [
            self.model(
                chunk_id=record.chunk_id,
                document_id=record.document_id,
                content=record.content,
                metadata=record.metadata,
                vector=list(record.vector),
                provider=record.provider,
            )
            for record in records
        ]
        with transaction.atomic():
            self.model.objects.bulk_create(
                instances,
                update_conflicts=True,
                unique_fields=["chunk"],
                update_fields=self.update_fields,
            )

    def fetch_candidates(self, vector, *, limit, owner_id=None, document_id=None):
        queryset = self.model.objects.annotate_with_distance(list(vector))
        if owner_id is not None:
            queryset = queryset.owned_by(owner_id)
        if document_id is not None:
            queryset = queryset.filter(document_id=document_id)

        rows = queryset.order_by("distance", "chunk__chunk_index").values(
            "chunk_id",
            "document_id",
            "content",
            "metadata",
            "distance",
            "chunk__chunk_index",
        )[:limit]

        for row in rows:
            yield SearchResult(
                id=str(row["chunk_id"]),
                score=1.0 - float(row["distance"]),
                metadata={
                    **(row["metadata"] or {}),
                    "content": row["content"],
                    "document_id": str(row["document_id"]),
                    "chunk_index": row["chunk__chunk_index"],
                },
            )

    def delete_batch(self, chunk_ids: Iterable[str]) -> int:
        """
        Delete records by chunk id.

        Args:
            chunk_ids: Ids of the chunks whose vectors should be removed.
        """
        deleted, _ = self.model.objects.filter(chunk_id__in=list(chunk_ids)).delete()
        return deleted

    def clear(self) -> None:
        """Clear all vectors from the database."""
        self.model.objects.all().delete()
