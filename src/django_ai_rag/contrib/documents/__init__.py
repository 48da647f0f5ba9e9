from .chunking import (
    ChunkTransformer,
    RecursiveChunkTransformer,
)
from .embedding import (
    CoreEmbeddingProvider,
    EmbeddingProvider,
    OpenAIProvider,
    ZhipuProvider,
)
from .embedding_cache import (
    DatabaseCacheBackend,
    DjangoCacheBackend,
    QueryEmbeddingCache,
)
from .prompt_builder import (
    build_prompt,
    validate_prompt_length,
)
from .query import (
    QueryVectorizer,
)
from .result_cache import (
    RetrievalResultCache,
)
from .retrieval import (
    RetrievalService,
    retrieve,
)
from .storage import (
    InMemoryVectorStore,
    PgVectorStore,
    VectorStore,
)

# These need the model registry, so they are imported on first access
_LAZY = {
    "chunk_document": ".processing",
    "embed_and_store_chunks": ".processing",
    "DocumentProcessor": ".processing",
    "EmbeddingService": ".processing",
    "delete_document_vectors_and_data": ".deletion",
    "DocumentDeletionService": ".deletion",
}


def __getattr__(name):
    if name in _LAZY:
        from importlib import import_module

        return getattr(import_module(_LAZY[name], __name__), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ChunkTransformer",
    "CoreEmbeddingProvider",
    "DatabaseCacheBackend",
    "DjangoCacheBackend",
    "DocumentDeletionService",
    "DocumentProcessor",
    "EmbeddingProvider",
    "EmbeddingService",
    "InMemoryVectorStore",
    "OpenAIProvider",
    "PgVectorStore",
    "QueryEmbeddingCache",
    "QueryVectorizer",
    "RecursiveChunkTransformer",
    "RetrievalResultCache",
    "RetrievalService",
    "VectorStore",
    "ZhipuProvider",
    "build_prompt",
    "chunk_document",
    "delete_document_vectors_and_data",
    "embed_and_store_chunks",
    "retrieve",
    "validate_prompt_length",
]
