"""
Retrieval result cache.

Whole retrieval results are cached per document and question, so asking the same
question about the same document again skips both the provider call and the vector
search. Each document gets its own namespace, which is invalidated whenever the
document is re-embedded or deleted. Like the query embedding cache it is never
authoritative: failures are logged and treated as a miss.
"""

import hashlib
import logging
from dataclasses import asdict
from typing import Any

from django_ai_rag.conf import get_setting

from .embedding_cache import CacheMetrics, DjangoCacheBackend, normalize_query, shorten
from .schema import RetrievalResult, RetrievedChunk

logger = logging.getLogger(__name__)

KEY_PREFIX = "rr"


class RetrievalResultCache:
    """
    Usage:
        result_cache = RetrievalResultCache(DjangoCacheBackend(), ttl=1800)
        result = result_cache.get(document_id, question, top_k=5, min_score=0.7)
        if result is None:
            result = service.retrieve(...)
            result_cache.set(document_id, question, result, top_k=5, min_score=0.7)
    """

    def __init__(self, backend: DjangoCacheBackend | None, *, ttl: int | None = None):
        self.backend = backend
        self.ttl = get_setting("RESULT_CACHE_TTL") if ttl is None else ttl
        self.metrics = CacheMetrics()

    @property
    def enabled(self) -> bool:
        return self.backend is not None and self.ttl > 0

    def namespace_for(self, document_id) -> str:
        return f"{KEY_PREFIX}:{document_id}"

    def digest(self, query: str, *, top_k: int, min_score: float, rerank: bool) -> str:
        normalized = normalize_query(query)
        return hashlib.sha256(
            f"{top_k}:{min_score}:{int(rerank)}:{normalized}".encode("utf-8")
        ).hexdigest()

    def get(
        self, document_id, query: str, *, top_k: int, min_score: float, rerank: bool = False
    ) -> RetrievalResult | None:
        if not self.enabled:
            return None

        namespace = self.namespace_for(document_id)
        digest = self.digest(query, top_k=top_k, min_score=min_score, rerank=rerank)
        try:
            cached = self.backend.get(namespace, digest)
        except Exception:
            logger.warning(
                f"Retrieval result cache read failed for '{shorten(query)}'",
                exc_info=True,
            )
            return None

        if cached is None:
            self.metrics.record_miss()
            return None

        try:
            result = self.load(cached)
        except (TypeError, KeyError, ValueError):
            logger.warning(f"Discarding corrupted retrieval result {namespace}:{digest}")
            try:
                self.backend.delete(namespace, digest)
            except Exception:
                logger.warning("Failed to delete corrupted cache entry", exc_info=True)
            self.metrics.record_miss()
            return None

        self.metrics.record_hit()
        logger.debug(
            f"Retrieval result cache hit for document {document_id} '{shorten(query)}'"
        )
        return result

    def set(
        self,
        document_id,
        query: str,
        result: RetrievalResult,
        *,
        top_k: int,
        min_score: float,
        rerank: bool = False,
    ) -> None:
        if not self.enabled:
            return
        try:
            self.backend.set(
                self.namespace_for(document_id),
                self.digest(query, top_k=top_k, min_score=min_score, rerank=rerank),
                self.dump(result),
                self.ttl,
            )
        except Exception:
            logger.warning(
                f"Retrieval result cache write failed for '{shorten(query)}'",
                exc_info=True,
            )

    def invalidate_document(self, document_id) -> None:
        """Forget every cached result for a document."""
        if not self.enabled:
            return
        try:
            self.backend.invalidate(self.namespace_for(document_id))
        except Exception:
            logger.warning(
                f"Failed to invalidate cached results for document {document_id}",
                exc_info=True,
            )
            return
        logger.debug(f"Invalidated cached results for document {document_id}")

    @staticmethod
    def dump(result: RetrievalResult) -> dict[str, Any]:
        return asdict(result)

    @staticmethod
    def load(data: dict[str, Any]) -> RetrievalResult:
        if not isinstance(data, dict):
            raise TypeError(f"Expected a dict, got {type(data).__name__}")
        chunks = [RetrievedChunk(**chunk) for chunk in data["chunks"]]
        return RetrievalResult(**{**data, "chunks": chunks, "cached": True})

    def get_stats(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "metrics": self.metrics.as_dict()}


def invalidate_cached_results(document_id) -> None:
    """Drop a document's cached results from the configured result cache."""
    from .services import get_result_cache

    get_result_cache().invalidate_document(document_id)
