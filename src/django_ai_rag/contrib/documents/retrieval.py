import logging
import time

from django.core.exceptions import ValidationError

from django_ai_rag.conf import get_setting
from django_ai_rag.exceptions import DocumentNotFoundError, DocumentNotReadyError

from .embedding_cache import shorten
from .query import QueryVectorizer, validate_question
from .result_cache import RetrievalResultCache
from .schema import RetrievalResult, RetrievedChunk
from .storage import VectorStore

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    Finds the chunks of one document most relevant to a question.

    The document must exist, belong to ``owner_id`` when one is given, and be READY.
    The question is then vectorized (through the query embedding cache) and the vector
    store is searched within the document and the owner's documents. Whole results
    are cached per document and question when a result cache is configured. Errors
    from vectorizing or searching propagate unchanged.
    """

    def __init__(
        self,
        vectorizer: QueryVectorizer,
        vector_store: VectorStore,
        result_cache: RetrievalResultCache | None = None,
    ):
        self.vectorizer = vectorizer
        self.vector_store = vector_store
        self.result_cache = result_cache

    def verify_document_access(self, document_id, owner_id=None):
        """
        Return the document, or raise DOCUMENT_NOT_FOUND / DOCUMENT_NOT_READY.

        A document owned by someone else is reported as not found.
        """
        from .models import Document, DocumentStatus

        try:
            documents = Document.objects.filter(pk=document_id)
            if owner_id is not None:
                documents = documents.filter(owner_id=owner_id)
            document = documents.only("pk", "status", "owner_id").first()
        except (ValidationError, ValueError):
            document = None

        if document is None:
            raise DocumentNotFoundError("Document not found or access denied")
        if document.status != DocumentStatus.READY:
            raise DocumentNotReadyError(
                f"Document {document.pk} is not ready yet ({document.status})"
            )
        return document

    def retrieve(
        self,
        document_id,
        question: str,
        *,
        owner_id=None,
        top_k: int | None = None,
        min_score: float | None = None,
        rerank: bool = False,
        use_cache: bool = True,
    ) -> RetrievalResult:
        start = time.perf_counter()
        top_k = get_setting("RETRIEVAL_TOP_K") if top_k is None else top_k
        min_score = get_setting("RETRIEVAL_MIN_SCORE") if min_score is None else min_score

        query = self.vectorizer.validate(question)
        document = self.verify_document_access(document_id, owner_id)

        options = {"top_k": top_k, "min_score": min_score, "rerank": rerank}
        result_cache = self.result_cache if use_cache else None

        if result_cache is not None:
            cached = result_cache.get(document.pk, query, **options)
            if cached is not None:
                cached.elapsed_ms = (time.perf_counter() - start) * 1000
                logger.info(
                    f"Served cached retrieval for document {document.pk} "
                    f"query='{shorten(query)}'"
                )
                return cached

        vectorized = self.vectorizer.vectorize(query)
        results = self.vector_store.search(
            vectorized.vector,
            top_k=top_k,
            min_score=min_score,
            owner_id=owner_id,
            document_id=document.pk,
        )

        chunks = [RetrievedChunk.from_search_result(result) for result in results]
        chunks.sort(key=lambda chunk: (-chunk.score, chunk.chunk_index))
        if rerank:
            chunks = self.rerank(vectorized.query, chunks)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Retrieved {len(chunks)} chunks for document {document.pk} "
            f"query='{shorten(vectorized.query)}' cache_hit={vectorized.cache_hit} "
            f"in {elapsed_ms:.0f}ms"
        )
        result = RetrievalResult(
            query=vectorized.query,
            document_id=str(document.pk),
            chunks=chunks,
            total_found=len(results),
            cache_hit=vectorized.cache_hit,
            elapsed_ms=elapsed_ms,
        )
        if result_cache is not None:
            result_cache.set(document.pk, query, result, **options)
        return result

    def rerank(self, query: str, chunks: list[RetrievedChunk]) -> list[RetrievedChunk]:
        """Hook for a reranking model. The default keeps the similarity order."""
        return chunks


def get_retrieval_service() -> RetrievalService:
    from .services import (
        get_embedding_provider,
        get_query_cache,
        get_result_cache,
        get_vector_store,
    )

    return RetrievalService(
        QueryVectorizer(get_embedding_provider(), get_query_cache()),
        get_vector_store(),
        get_result_cache(),
    )


def retrieve(document_id, question: str, **options) -> RetrievalResult:
    """
    Retrieve context for ``question`` from a document using the configured services.

    Pass ``owner_id`` for requests made on a user's behalf; without it any READY
    document can be searched.
    """
    # Reject bad input before any provider is built
    validate_question(question)
    return get_retrieval_service().retrieve(document_id, question, **options)
