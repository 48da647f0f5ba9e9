"""
Process-wide handles for the configured provider, caches, vector store and blob storage.

Each is built once from the ``DJANGO_AI_RAG`` settings on first use. ``reset_services``
drops them all; the app does that automatically when the settings change (for
example under ``override_settings``).
"""

from functools import cache

from django.utils.module_loading import import_string

from django_ai_rag.conf import get_setting

from .blob import BlobStorage
from .embedding import EmbeddingProvider, build_embedding_provider, expected_dimensions
from .embedding_cache import DjangoCacheBackend, QueryEmbeddingCache
from .result_cache import RetrievalResultCache
from .storage import VectorStore


@cache
def get_embedding_provider() -> EmbeddingProvider:
    return build_embedding_provider()


@cache
def get_query_cache() -> QueryEmbeddingCache:
    backend_path = get_setting("CACHE_BACKEND")
    backend = import_string(backend_path)() if backend_path else None
    return QueryEmbeddingCache(
        backend,
        provider_name=get_setting("EMBEDDING_PROVIDER"),
        dimensions=expected_dimensions(),
        ttl=get_setting("CACHE_TTL"),
    )


@cache
def get_result_cache() -> RetrievalResultCache:
    # Results are kept on the Django cache alias whichever backend holds query vectors
    backend = DjangoCacheBackend() if get_setting("CACHE_BACKEND") else None
    return RetrievalResultCache(backend, ttl=get_setting("RESULT_CACHE_TTL"))


@cache
def get_vector_store() -> VectorStore:
    return import_string(get_setting("VECTOR_STORE"))()


@cache
def get_blob_storage() -> BlobStorage:
    return import_string(get_setting("BLOB_STORAGE"))()


def reset_services() -> None:
    get_embedding_provider.cache_clear()
    get_query_cache.cache_clear()
    get_result_cache.cache_clear()
    get_vector_store.cache_clear()
    get_blob_storage.cache_clear()
