import logging

from django_ai_rag.conf import get_setting
from django_ai_rag.exceptions import (
    ErrorCode,
    QueryVectorizationError,
    classify_provider_error,
)

from .embedding import EmbeddingProvider
from .embedding_cache import QueryEmbeddingCache, shorten
from .schema import VectorizedQuery

logger = logging.getLogger(__name__)


def validate_question(question: str, *, max_length: int | None = None) -> str:
    """Return the trimmed question, or raise EMPTY_QUERY / QUERY_TOO_LONG."""
    max_length = max_length or get_setting("QUERY_MAX_LENGTH")
    trimmed = (question or "").strip()
    if not trimmed:
        raise QueryVectorizationError("Question cannot be empty", ErrorCode.EMPTY_QUERY)
    if len(trimmed) > max_length:
        raise QueryVectorizationError(
            f"Question too long (max {max_length} characters)",
            ErrorCode.QUERY_TOO_LONG,
        )
    return trimmed


class QueryVectorizer:
    """Turns a user question into a vector, through the query embedding cache."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: QueryEmbeddingCache | None = None,
        *,
        max_length: int | None = None,
    ):
        self.provider = provider
        self.cache = cache
        self.max_length = max_length or get_setting("QUERY_MAX_LENGTH")

    def validate(self, question: str) -> str:
        return validate_question(question, max_length=self.max_length)

    def vectorize(self, question: str) -> VectorizedQuery:
        trimmed = self.validate(question)

        if self.cache is not None:
            cached = self.cache.get(trimmed)
            if cached is not None:
                return VectorizedQuery(query=trimmed, vector=cached, cache_hit=True)

        try:
            vector = self.provider.embed(trimmed)
        except Exception as e:
            code = classify_provider_error(e)
            logger.error(
                f"Query vectorization failed for '{shorten(trimmed)}': {code}"
            )
            raise QueryVectorizationError(
                f"Embedding generation failed: {e}", code
            ) from e

        if not vector or len(vector) != self.provider.dimensions:
            raise QueryVectorizationError(
                f"Invalid vector dimension: {len(vector or [])}, "
                f"expected {self.provider.dimensions}",
                ErrorCode.INVALID_DIMENSION,
            )

        vector = [float(value) for value in vector]
        if self.cache is not None:
            self.cache.set(trimmed, vector)
        return VectorizedQuery(query=trimmed, vector=vector, cache_hit=False)
