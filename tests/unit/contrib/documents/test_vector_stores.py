from unittest import mock

import pytest

from django_ai_rag.contrib.documents.models import ChunkEmbedding, DocumentChunk
from django_ai_rag.contrib.documents.schema import SearchResult, VectorRecord
from django_ai_rag.contrib.documents.storage import InMemoryVectorStore, PgVectorStore
from django_ai_rag.exceptions import ErrorCode, VectorSearchError


def record(chunk_id, vector, *, document_id="doc-1", chunk_index=0, content=None):
    return VectorRecord(
        chunk_id=chunk_id,
        document_id=document_id,
        vector=vector,
        content=content or f"content of {chunk_id}",
        metadata={"chunk_index": chunk_index},
        provider="fake",
    )


@pytest.fixture
def populated_store():
    store = InMemoryVectorStore()
    store.upsert_batch(
        [
            record("exact", [1.0, 0.0, 0.0], chunk_index=0),
            record("close", [0.9, 0.1, 0.0], chunk_index=1),
            record("far", [0.0, 1.0, 0.0], chunk_index=2),
            record("opposite", [-1.0, 0.0, 0.0], chunk_index=3),
            record("other-doc", [1.0, 0.0, 0.0], document_id="doc-2"),
        ]
    )
    return store


class TestInMemoryVectorStore:
    def test_results_sorted_by_score(self, populated_store):
        results = populated_store.search([1.0, 0.0, 0.0], top_k=10, document_id="doc-1")

        assert [result.id for result in results] == ["exact", "close", "far"]
        scores = [result.score for result in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].score == pytest.approx(1.0)

    def test_min_score_filters(self, populated_store):
        results = populated_store.search(
            [1.0, 0.0, 0.0], top_k=10, min_score=0.7, document_id="doc-1"
        )
        assert [result.id for result in results] == ["exact", "close"]
        assert all(result.score >= 0.7 for result in results)

    def test_top_k_limits(self, populated_store):
        results = populated_store.search([1.0, 0.0, 0.0], top_k=1, document_id="doc-1")
        assert [result.id for result in results] == ["exact"]

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_non_positive_top_k(self, populated_store, top_k):
        assert populated_store.search([1.0, 0.0, 0.0], top_k=top_k) == []

    def test_metadata_carries_content_and_document(self, populated_store):
        result = populated_store.search([0.0, 1.0, 0.0], top_k=1)[0]
        assert result.metadata == {
            "chunk_index": 2,
            "content": "content of far",
            "document_id": "doc-1",
        }

    def test_ties_break_on_chunk_index(self):
        store = InMemoryVectorStore()
        store.upsert_batch(
            [
                record("second", [1.0, 0.0], chunk_index=5),
                record("first", [1.0, 0.0], chunk_index=2),
            ]
        )
        results = store.search([1.0, 0.0], top_k=2)
        assert [result.id for result in results] == ["first", "second"]

    def test_zero_vectors_are_skipped(self):
        store = InMemoryVectorStore()
        store.upsert(record("zero", [0.0, 0.0]))
        assert store.search([1.0, 0.0], top_k=5) == []
        assert store.search([0.0, 0.0], top_k=5) == []

    def test_upsert_replaces(self, populated_store):
        populated_store.upsert(record("far", [1.0, 0.0, 0.0], chunk_index=2))
        results = populated_store.search(
            [1.0, 0.0, 0.0], top_k=10, min_score=0.999, document_id="doc-1"
        )
        assert {result.id for result in results} == {"exact", "far"}

    def test_delete(self, populated_store):
        assert populated_store.delete_batch(["exact", "close", "missing"]) == 2
        assert populated_store.delete("far") == 1
        assert set(populated_store.records) == {"opposite", "other-doc"}

    def test_clear(self, populated_store):
        populated_store.clear()
        assert populated_store.search([1.0, 0.0, 0.0], top_k=5) == []

    @pytest.mark.django_db
    def test_owner_filter(self, make_document, user, other_user):
        mine = make_document(owner=user)
        theirs = make_document(owner=other_user)
        store = InMemoryVectorStore()
        store.upsert_batch(
            [
                record("mine", [1.0, 0.0], document_id=str(mine.pk)),
                record("theirs", [1.0, 0.0], document_id=str(theirs.pk)),
            ]
        )

        results = store.search([1.0, 0.0], top_k=5, owner_id=user.pk)

        assert [result.id for result in results] == ["mine"]
        assert store.search([1.0, 0.0], top_k=5, owner_id=other_user.pk)[0].id == "theirs"

    def test_overfetch(self):
        store = InMemoryVectorStore(overfetch=3)
        with mock.patch.object(store, "fetch_candidates", return_value=[]) as fetch:
            store.search([1.0], top_k=4)
        assert fetch.call_args.kwargs["limit"] == 12

    def test_backend_failure_raises_search_error(self):
        store = InMemoryVectorStore()
        with mock.patch.object(
            store, "fetch_candidates", side_effect=RuntimeError("connection reset")
        ):
            with pytest.raises(VectorSearchError) as excinfo:
                store.search([1.0], top_k=4)
        assert excinfo.value.code == ErrorCode.VECTOR_SEARCH_ERROR

    def test_search_drops_candidates_below_threshold_after_fetch(self):
        store = InMemoryVectorStore()
        candidates = [
            SearchResult(id="a", score=0.95, metadata={"chunk_index": 0}),
            SearchResult(id="b", score=0.5, metadata={"chunk_index": 1}),
        ]
        with mock.patch.object(store, "fetch_candidates", return_value=candidates):
            results = store.search([1.0], top_k=5, min_score=0.7)
        assert [result.id for result in results] == ["a"]


@pytest.mark.django_db
class TestPgVectorStoreWrites:
    """Writes work on any database; similarity search is covered under integration."""

    @pytest.fixture
    def chunks(self, make_document):
        document = make_document("alpha beta")
        return [
            DocumentChunk.objects.create(
                document=document,
                chunk_index=index,
                content=content,
                length=len(content),
                start_offset=offset,
                end_offset=offset + len(content),
            )
            for index, (offset, content) in enumerate([(0, "alpha "), (6, "beta")])
        ]

    def to_records(self, chunks, vector):
        return [
            record(
                str(chunk.pk),
                vector,
                document_id=str(chunk.document_id),
                chunk_index=chunk.chunk_index,
                content=chunk.content,
            )
            for chunk in chunks
        ]

    def test_upsert_is_idempotent(self, chunks):
        store = PgVectorStore()
        store.upsert_batch(self.to_records(chunks, [1.0, 0.0, 0.0]))
        store.upsert_batch(self.to_records(chunks, [0.0, 1.0, 0.0]))

        assert ChunkEmbedding.objects.count() == 2
        stored = ChunkEmbedding.objects.get(chunk=chunks[0])
        assert list(stored.vector) == [0.0, 1.0, 0.0]
        assert stored.content == "alpha "
        assert stored.provider == "fake"

    def test_upsert_empty_batch(self):
        PgVectorStore().upsert_batch([])
        assert not ChunkEmbedding.objects.exists()

    def test_delete_batch(self, chunks):
        store = PgVectorStore()
        store.upsert_batch(self.to_records(chunks, [1.0, 0.0, 0.0]))

        assert store.delete_batch([str(chunks[0].pk)]) == 1
        assert list(ChunkEmbedding.objects.values_list("chunk_id", flat=True)) == [
            chunks[1].pk
        ]
        assert store.delete(str(chunks[0].pk)) == 0

    def test_clear(self, chunks):
        store = PgVectorStore()
        store.upsert_batch(self.to_records(chunks, [1.0, 0.0, 0.0]))
        store.clear()
        assert not ChunkEmbedding.objects.exists()
