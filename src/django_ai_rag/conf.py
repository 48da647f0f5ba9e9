"""
Settings access for django-ai-rag.

All options live in a single ``DJANGO_AI_RAG`` dict in the Django settings module:

    DJANGO_AI_RAG = {
        "EMBEDDING_PROVIDER": "zhipu",
        "API_KEY": env("ZHIPU_API_KEY"),
        "CACHE_ALIAS": "redis",
    }

Values are looked up on every access so ``override_settings`` works in tests.
"""

from typing import Any

from django.conf import settings

SETTINGS_NAME = "DJANGO_AI_RAG"

DEFAULTS: dict[str, Any] = {
    # Provider
    "EMBEDDING_PROVIDER": "openai",
    "API_KEY": None,
    "BASE_URL": None,
    "EMBEDDING_MODEL": None,
    "EMBEDDING_DIMENSIONS": None,
    "CHAT_MODEL": None,
    "PROVIDER_TIMEOUT": 30.0,
    # Chunking
    "CHUNK_SIZE": 1000,
    "CHUNK_OVERLAP": 200,
    "MAX_CHUNKS": 10000,
    # Embedding
    "EMBEDDING_BATCH_SIZE": 20,
    "EMBEDDING_CONCURRENCY": 3,
    # Query embedding cache
    "CACHE_BACKEND": "django_ai_rag.contrib.documents.embedding_cache.DjangoCacheBackend",
    "CACHE_ALIAS": "default",
    "CACHE_TTL": 60 * 60 * 24,
    # Retrieval result cache, on the same alias. 0 disables it
    "RESULT_CACHE_TTL": 60 * 30,
    # Retrieval
    "QUERY_MAX_LENGTH": 1000,
    "RETRIEVAL_TOP_K": 5,
    "RETRIEVAL_MIN_SCORE": 0.7,
    "SEARCH_OVERFETCH": 2,
    "VECTOR_STORE": "django_ai_rag.contrib.documents.storage.PgVectorStore",
    # Prompt budgeting
    "CONTEXT_TOKEN_BUDGET": 2000,
    "MODEL_CONTEXT_LIMIT": 3000,
    "HISTORY_MESSAGES": 6,
    # Deletion
    "BLOB_STORAGE": "django_ai_rag.contrib.documents.blob.DjangoBlobStorage",
    "S3_BUCKET": None,
    "S3_REGION": None,
    "RETRY_ATTEMPTS": 3,
    "RETRY_BASE_DELAY": 1.0,
}


def get_setting(name: str) -> Any:
    """Return a django-ai-rag setting, falling back to the package default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown {SETTINGS_NAME} setting '{name}'")
    user_settings = getattr(settings, SETTINGS_NAME, None) or {}
    return user_settings.get(name, DEFAULTS[name])
