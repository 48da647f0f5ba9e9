import uuid
from unittest import mock

import pytest

from django_ai_rag.contrib.documents import retrieval
from django_ai_rag.contrib.documents.embedding_cache import (
    DjangoCacheBackend,
    QueryEmbeddingCache,
)
from django_ai_rag.contrib.documents.models import DocumentStatus
from django_ai_rag.contrib.documents.query import QueryVectorizer
from django_ai_rag.contrib.documents.result_cache import RetrievalResultCache
from django_ai_rag.contrib.documents.retrieval import RetrievalService
from django_ai_rag.contrib.documents.schema import VectorRecord
from django_ai_rag.contrib.documents.storage import InMemoryVectorStore
from django_ai_rag.exceptions import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    ErrorCode,
    QueryVectorizationError,
    VectorSearchError,
)
from testapp.fakes import FailingEmbeddingProvider

QUESTION = "How are chunks embedded?"


@pytest.fixture
def query_cache():
    return QueryEmbeddingCache(
        DjangoCacheBackend(), provider_name="fake", dimensions=8, ttl=60
    )


@pytest.fixture
def service(fake_provider, vector_store, query_cache):
    return RetrievalService(QueryVectorizer(fake_provider, query_cache), vector_store)


@pytest.fixture
def document(make_document):
    return make_document("Parsed text about embeddings.")


def add_chunk(store, provider, chunk_id, text, *, document, chunk_index=0):
    store.upsert(
        VectorRecord(
            chunk_id=chunk_id,
            document_id=str(document.pk),
            vector=provider.vector_for(text),
            content=text,
            metadata={"chunk_index": chunk_index, "length": len(text)},
        )
    )


@pytest.mark.django_db
class TestRetrievalService:
    def test_returns_matching_chunk_first(
        self, service, fake_provider, vector_store, document
    ):
        add_chunk(vector_store, fake_provider, "match", QUESTION, document=document, chunk_index=4)
        add_chunk(vector_store, fake_provider, "other", "Unrelated", document=document)

        result = service.retrieve(document.pk, QUESTION, min_score=-1.0)

        assert result.query == QUESTION
        assert result.document_id == str(document.pk)
        assert result.chunks[0].id == "match"
        assert result.chunks[0].content == QUESTION
        assert result.chunks[0].chunk_index == 4
        assert result.chunks[0].score == pytest.approx(1.0)
        assert result.chunks[0].metadata == {"length": len(QUESTION)}
        assert result.total_found == len(result.chunks)
        assert result.elapsed_ms >= 0
        assert result.cached is False

    def test_min_score_and_top_k(self, service, fake_provider, vector_store, document):
        for index in range(6):
            add_chunk(
                vector_store, fake_provider, f"c{index}", QUESTION,
                document=document, chunk_index=index,
            )
        add_chunk(
            vector_store, fake_provider, "weak", "Something else",
            document=document, chunk_index=9,
        )

        result = service.retrieve(document.pk, QUESTION, top_k=3, min_score=0.99)

        assert [chunk.id for chunk in result.chunks] == ["c0", "c1", "c2"]
        assert all(chunk.score >= 0.99 for chunk in result.chunks)

    def test_limited_to_document(
        self, service, fake_provider, vector_store, document, make_document
    ):
        other = make_document("Another document.")
        add_chunk(vector_store, fake_provider, "elsewhere", QUESTION, document=other)

        result = service.retrieve(document.pk, QUESTION, min_score=0.0)

        assert result.chunks == []
        assert result.total_found == 0

    def test_default_settings(self, service, fake_provider, vector_store, document):
        for index in range(8):
            add_chunk(
                vector_store, fake_provider, f"c{index}", QUESTION,
                document=document, chunk_index=index,
            )

        result = service.retrieve(document.pk, QUESTION)

        assert len(result.chunks) == 5

    def test_query_embedding_cache_hit_is_reported(self, service, fake_provider, document):
        first = service.retrieve(document.pk, QUESTION)
        second = service.retrieve(document.pk, QUESTION.lower())

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert fake_provider.embed_calls == [QUESTION]

    def test_vectorization_errors_propagate(self, vector_store, document):
        service = RetrievalService(
            QueryVectorizer(FailingEmbeddingProvider(TimeoutError("timed out"))),
            vector_store,
        )
        with pytest.raises(QueryVectorizationError) as excinfo:
            service.retrieve(document.pk, QUESTION)
        assert excinfo.value.code == ErrorCode.EMBEDDING_TIMEOUT

    def test_search_errors_propagate(self, service, vector_store, document):
        with mock.patch.object(
            vector_store, "fetch_candidates", side_effect=RuntimeError("db down")
        ):
            with pytest.raises(VectorSearchError):
                service.retrieve(document.pk, QUESTION)

    def test_rerank_hook(self, service, fake_provider, vector_store, document):
        add_chunk(vector_store, fake_provider, "a", QUESTION, document=document, chunk_index=0)
        add_chunk(vector_store, fake_provider, "b", QUESTION, document=document, chunk_index=1)

        with mock.patch.object(
            service, "rerank", side_effect=lambda query, chunks: chunks[::-1]
        ) as rerank:
            result = service.retrieve(document.pk, QUESTION, rerank=True)

        rerank.assert_called_once()
        assert [chunk.id for chunk in result.chunks] == ["b", "a"]


@pytest.mark.django_db
class TestDocumentAccess:
    @pytest.mark.parametrize("document_id", [uuid.uuid4(), "not-a-uuid"])
    def test_missing_document(self, service, fake_provider, document_id):
        with pytest.raises(DocumentNotFoundError) as excinfo:
            service.retrieve(document_id, QUESTION)

        assert excinfo.value.code == ErrorCode.DOCUMENT_NOT_FOUND
        assert fake_provider.embed_calls == []

    def test_document_of_another_owner(
        self, service, fake_provider, vector_store, make_document, user, other_user
    ):
        theirs = make_document("Private notes.", owner=other_user)
        add_chunk(vector_store, fake_provider, "private", QUESTION, document=theirs)

        with pytest.raises(DocumentNotFoundError):
            service.retrieve(theirs.pk, QUESTION, owner_id=user.pk, min_score=-1.0)

        assert fake_provider.embed_calls == []
        result = service.retrieve(theirs.pk, QUESTION, owner_id=other_user.pk)
        assert [chunk.id for chunk in result.chunks] == ["private"]

    @pytest.mark.parametrize(
        "status",
        [
            DocumentStatus.PENDING,
            DocumentStatus.PARSING,
            DocumentStatus.EMBEDDING,
            DocumentStatus.FAILED,
        ],
    )
    def test_document_not_ready(self, service, fake_provider, make_document, status):
        document = make_document("Still working.", status=status)

        with pytest.raises(DocumentNotReadyError) as excinfo:
            service.retrieve(document.pk, QUESTION)

        assert excinfo.value.code == ErrorCode.DOCUMENT_NOT_READY
        assert fake_provider.embed_calls == []

    def test_empty_question_checked_first(self, service):
        with pytest.raises(QueryVectorizationError) as excinfo:
            service.retrieve(uuid.uuid4(), "  ")
        assert excinfo.value.code == ErrorCode.EMPTY_QUERY


@pytest.mark.django_db
class TestRetrievalResultCaching:
    @pytest.fixture
    def result_cache(self):
        return RetrievalResultCache(DjangoCacheBackend(), ttl=60)

    @pytest.fixture
    def service(self, fake_provider, vector_store, query_cache, result_cache):
        return RetrievalService(
            QueryVectorizer(fake_provider, query_cache), vector_store, result_cache
        )

    def test_repeated_question_skips_search(
        self, service, fake_provider, vector_store, document
    ):
        add_chunk(vector_store, fake_provider, "match", QUESTION, document=document)
        first = service.retrieve(document.pk, QUESTION, min_score=0.5)

        with mock.patch.object(vector_store, "search") as search:
            second = service.retrieve(document.pk, f"  {QUESTION.upper()} ", min_score=0.5)

        search.assert_not_called()
        assert first.cached is False
        assert second.cached is True
        assert second.chunks == first.chunks
        assert second.document_id == str(document.pk)

    def test_options_are_part_of_the_key(self, service, fake_provider, vector_store, document):
        add_chunk(vector_store, fake_provider, "match", QUESTION, document=document)
        service.retrieve(document.pk, QUESTION, min_score=0.5)

        assert service.retrieve(document.pk, QUESTION, min_score=0.9).cached is False
        assert service.retrieve(document.pk, QUESTION, top_k=1, min_score=0.5).cached is False

    def test_use_cache_false(self, service, document):
        service.retrieve(document.pk, QUESTION)
        assert service.retrieve(document.pk, QUESTION, use_cache=False).cached is False

    def test_access_is_checked_before_the_cache(
        self, service, make_document, user, other_user
    ):
        theirs = make_document("Private notes.", owner=other_user)
        service.retrieve(theirs.pk, QUESTION, owner_id=other_user.pk)

        with pytest.raises(DocumentNotFoundError):
            service.retrieve(theirs.pk, QUESTION, owner_id=user.pk)

    def test_invalidated_per_document(
        self, service, result_cache, document, make_document
    ):
        other = make_document("Another document.")
        service.retrieve(document.pk, QUESTION)
        service.retrieve(other.pk, QUESTION)

        result_cache.invalidate_document(document.pk)

        assert service.retrieve(document.pk, QUESTION).cached is False
        assert service.retrieve(other.pk, QUESTION).cached is True

    def test_corrupt_entry_is_a_miss(self, result_cache, document):
        namespace = result_cache.namespace_for(document.pk)
        digest = result_cache.digest(QUESTION, top_k=5, min_score=0.7, rerank=False)
        result_cache.backend.set(namespace, digest, {"chunks": [{"bogus": 1}]}, 60)

        assert result_cache.get(document.pk, QUESTION, top_k=5, min_score=0.7) is None
        assert result_cache.backend.get(namespace, digest) is None
        assert result_cache.metrics.misses == 1

    def test_backend_failure_is_a_miss(self, result_cache, document):
        with mock.patch.object(
            result_cache.backend, "get", side_effect=ConnectionError("redis down")
        ):
            assert result_cache.get(document.pk, QUESTION, top_k=5, min_score=0.7) is None

    def test_disabled_with_zero_ttl(self, document):
        result_cache = RetrievalResultCache(DjangoCacheBackend(), ttl=0)
        assert not result_cache.enabled
        assert result_cache.get(document.pk, QUESTION, top_k=5, min_score=0.7) is None


@pytest.mark.django_db
class TestRetrieveFunction:
    @pytest.mark.parametrize("question", ["", "   "])
    def test_empty_question_fails_before_any_service(self, question):
        with mock.patch.object(retrieval, "get_retrieval_service") as get_service:
            with pytest.raises(QueryVectorizationError) as excinfo:
                retrieval.retrieve("doc-1", question)

        assert excinfo.value.code == ErrorCode.EMPTY_QUERY
        get_service.assert_not_called()

    def test_delegates_to_configured_service(self):
        with mock.patch.object(retrieval, "get_retrieval_service") as get_service:
            retrieval.retrieve("doc-1", QUESTION, top_k=2)

        get_service.return_value.retrieve.assert_called_once_with(
            "doc-1", QUESTION, top_k=2
        )

    def test_unknown_document(self, fake_provider):
        with mock.patch(
            "django_ai_rag.contrib.documents.services.get_embedding_provider",
            return_value=fake_provider,
        ):
            with pytest.raises(DocumentNotFoundError):
                retrieval.retrieve(uuid.uuid4(), "anything")

    def test_configured_service(self, fake_provider):
        with mock.patch(
            "django_ai_rag.contrib.documents.services.get_embedding_provider",
            return_value=fake_provider,
        ):
            service = retrieval.get_retrieval_service()

        assert service.vectorizer.provider is fake_provider
        assert isinstance(service.vector_store, InMemoryVectorStore)
        assert service.vectorizer.cache.provider_name == "openai"
        assert service.result_cache.enabled
