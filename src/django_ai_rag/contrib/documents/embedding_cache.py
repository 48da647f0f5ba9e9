"""
Query embedding cache.

Caches the vector for a user question so repeated (or trivially reworded) questions
skip the provider round trip. Keys are derived from a normalized form of the query,
scoped by provider and vector dimension. The cache is never authoritative: every
failure is logged and treated as a miss.
"""

import hashlib
import logging
import math
import re
import threading
import unicodedata
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Sequence

from django.core.cache import caches
from django.utils import timezone

from django_ai_rag.conf import get_setting

logger = logging.getLogger(__name__)

KEY_PREFIX = "qv"

_QUOTES = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "‘": "'",
        "’": "'",
        "‚": "'",
    }
)
_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCTUATION = re.compile(r"\s+([?!.,;:])")


def normalize_query(query: str) -> str:
    """
    Reduce a query to the form used for cache keys.

    Full-width letters and punctuation are folded by NFKC, curly quotes become
    straight quotes, and the result is trimmed, case-folded and whitespace-collapsed
    with no space left before punctuation. ``"What is  AI ?"`` and ``"what is ai?"``
    normalize identically.
    """
    text = unicodedata.normalize("NFKC", query).translate(_QUOTES)
    text = _WHITESPACE.sub(" ", text.strip().casefold())
    return _SPACE_BEFORE_PUNCTUATION.sub(r"\1", text)


def shorten(text: str, length: int = 50) -> str:
    return text if len(text) <= length else f"{text[:length]}..."


class CacheMetrics:
    """Thread-safe hit/miss counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def record_hit(self) -> None:
        with self._lock:
            self.hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self.misses += 1

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        with self._lock:
            total = self.hits + self.misses
            return self.hits / total if total else 0.0

    def reset(self) -> None:
        with self._lock:
            self.hits = 0
            self.misses = 0

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            hits, misses = self.hits, self.misses
        total = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "total": total,
            "hit_rate": hits / total if total else 0.0,
        }


class EmbeddingCacheBackend(ABC):
    """Abstract base class for query embedding cache backends."""

    @abstractmethod
    def get(self, namespace: str, digest: str) -> Any:
        """Get the cached value for a key, or None if not found."""
        pass

    @abstractmethod
    def set(
        self, namespace: str, digest: str, vector: list[float], ttl: int | None
    ) -> None:
        """Store a vector for ``ttl`` seconds."""
        pass

    @abstractmethod
    def delete(self, namespace: str, digest: str) -> None:
        pass

    @abstractmethod
    def invalidate(self, namespace: str) -> int | None:
        """Drop every entry in a namespace. Returns the number removed, if known."""
        pass

    def count(self, namespace: str) -> int | None:
        """Number of live entries in a namespace, where the backend can tell."""
        return None


class DjangoCacheBackend(EmbeddingCacheBackend):
    """
    Backend on the Django cache framework (locmem, Redis, memcached...).

    Cache servers can't list keys portably, so a namespace is invalidated by bumping
    a generation counter that is passed as the cache ``version``. Old entries become
    unreachable and age out through their TTL.
    """

    def __init__(self, alias: str | None = None):
        self.alias = alias or get_setting("CACHE_ALIAS")

    @property
    def cache(self):
        return caches[self.alias]

    def _generation_key(self, namespace: str) -> str:
        return f"{namespace}:generation"

    def _generation(self, namespace: str) -> int:
        key = self._generation_key(namespace)
        generation = self.cache.get(key)
        if generation is None:
            self.cache.add(key, 1, timeout=None)
            generation = self.cache.get(key, 1)
        return generation

    def _key(self, namespace: str, digest: str) -> str:
        return f"{namespace}:{digest}"

    def get(self, namespace, digest):
        return self.cache.get(
            self._key(namespace, digest), version=self._generation(namespace)
        )

    def set(self, namespace, digest, vector, ttl):
        self.cache.set(
            self._key(namespace, digest),
            vector,
            timeout=ttl,
            version=self._generation(namespace),
        )

    def delete(self, namespace, digest):
        self.cache.delete(
            self._key(namespace, digest), version=self._generation(namespace)
        )

    def invalidate(self, namespace):
        key = self._generation_key(namespace)
        try:
            self.cache.incr(key)
        except ValueError:
            # No generation recorded yet, so nothing was reachable under it either
            self.cache.set(key, 2, timeout=None)
        return None


class DatabaseCacheBackend(EmbeddingCacheBackend):
    """Model-backed cache. Expired rows are ignored on read and removed by ``purge_expired``."""

    def _get_cache_model(self):
        from .models import QueryEmbeddingCacheEntry

        return QueryEmbeddingCacheEntry

    def _live(self, namespace: str):
        return self._get_cache_model().objects.filter(
            namespace=namespace, expires_at__gt=timezone.now()
        )

    def get(self, namespace, digest):
        return (
            self._live(namespace)
            .filter(digest=digest)
            .values_list("vector", flat=True)
            .first()
        )

    def set(self, namespace, digest, vector, ttl):
        ttl = get_setting("CACHE_TTL") if ttl is None else ttl
        self._get_cache_model().objects.update_or_create(
            namespace=namespace,
            digest=digest,
            defaults={
                "vector": list(vector),
                "dimensions": len(vector),
                "expires_at": timezone.now() + timedelta(seconds=ttl),
            },
        )

    def delete(self, namespace, digest):
        self._get_cache_model().objects.filter(
            namespace=namespace, digest=digest
        ).delete()

    def invalidate(self, namespace):
        deleted, _ = (
            self._get_cache_model().objects.filter(namespace=namespace).delete()
        )
        return deleted

    def count(self, namespace):
        return self._live(namespace).count()

    def purge_expired(self) -> int:
        deleted, _ = (
            self._get_cache_model()
            .objects.filter(expires_at__lte=timezone.now())
            .delete()
        )
        return deleted


class QueryEmbeddingCache:
    """
    Cache of query vectors for one provider and dimension.

    ``get`` never raises and ``set`` never propagates backend failures. Cached values
    that are not a list of ``dimensions`` finite numbers are deleted and reported as a
    miss.

    Usage:
        cache = QueryEmbeddingCache(DjangoCacheBackend(), provider_name="openai", dimensions=1536)
        vector = cache.get(question)
        if vector is None:
            vector = provider.embed(question)
            cache.set(question, vector)
    """

    def __init__(
        self,
        backend: EmbeddingCacheBackend | None,
        *,
        provider_name: str,
        dimensions: int,
        ttl: int | None = None,
    ):
        self.backend = backend
        self.provider_name = provider_name
        self.dimensions = dimensions
        self.ttl = get_setting("CACHE_TTL") if ttl is None else ttl
        self.metrics = CacheMetrics()

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def namespace_for(self, provider_name: str | None = None) -> str:
        return f"{KEY_PREFIX}:{provider_name or self.provider_name}"

    @property
    def namespace(self) -> str:
        return self.namespace_for()

    def digest(self, query: str) -> str:
        normalized = normalize_query(query)
        return hashlib.sha256(
            f"{self.dimensions}:{normalized}".encode("utf-8")
        ).hexdigest()

    def make_key(self, query: str) -> str:
        return f"{self.namespace}:{self.digest(query)}"

    def is_valid_vector(self, value: Any) -> bool:
        if not isinstance(value, (list, tuple)):
            return False
        if len(value) != self.dimensions:
            return False
        return all(
            isinstance(item, (int, float))
            and not isinstance(item, bool)
            and math.isfinite(item)
            for item in value
        )

    def get(self, query: str) -> list[float] | None:
        if not self.enabled:
            return None

        digest = self.digest(query)
        try:
            cached = self.backend.get(self.namespace, digest)
        except Exception:
            logger.warning(
                f"Query embedding cache read failed for '{shorten(query)}'",
                exc_info=True,
            )
            return None

        if cached is None:
            self.metrics.record_miss()
            logger.debug(f"Query embedding cache miss for '{shorten(query)}'")
            return None

        if not self.is_valid_vector(cached):
            logger.warning(
                f"Discarding corrupted query embedding cache entry {self.namespace}:{digest}"
            )
            try:
                self.backend.delete(self.namespace, digest)
            except Exception:
                logger.warning("Failed to delete corrupted cache entry", exc_info=True)
            self.metrics.record_miss()
            return None

        self.metrics.record_hit()
        logger.debug(f"Query embedding cache hit for '{shorten(query)}'")
        return [float(item) for item in cached]

    def set(self, query: str, vector: Sequence[float]) -> None:
        if not self.enabled:
            return
        try:
            self.backend.set(
                self.namespace,
                self.digest(query),
                [float(item) for item in vector],
                self.ttl,
            )
        except Exception:
            logger.warning(
                f"Query embedding cache write failed for '{shorten(query)}'",
                exc_info=True,
            )

    def invalidate_provider(self, provider_name: str | None = None) -> int | None:
        """Drop every cached vector for a provider (the current one by default)."""
        if not self.enabled:
            return 0
        namespace = self.namespace_for(provider_name)
        try:
            removed = self.backend.invalidate(namespace)
        except Exception:
            logger.warning(
                f"Failed to invalidate query embedding cache {namespace}",
                exc_info=True,
            )
            return None
        logger.info(f"Invalidated query embedding cache {namespace}")
        return removed

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "enabled": self.enabled,
            "provider": self.provider_name,
            "metrics": self.metrics.as_dict(),
        }
        if self.enabled:
            try:
                entries = self.backend.count(self.namespace)
            except Exception:
                logger.warning("Failed to count query embedding cache entries", exc_info=True)
                entries = None
            if entries is not None:
                stats["entries"] = entries
        return stats

    def reset_metrics(self) -> None:
        self.metrics.reset()
