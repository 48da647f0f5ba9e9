"""
Error taxonomy for the RAG pipeline.

Every pipeline failure carries an ``ErrorCode`` so callers can decide how to react
(retry on timeout, ask the user to rephrase, surface a conflict) without parsing
messages. The code is also what gets recorded on a failed Document.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    EMPTY_CONTENT = "EMPTY_CONTENT"
    DIMENSION_MISMATCH = "DIMENSION_MISMATCH"
    EMPTY_QUERY = "EMPTY_QUERY"
    QUERY_TOO_LONG = "QUERY_TOO_LONG"
    INVALID_DIMENSION = "INVALID_DIMENSION"
    EMBEDDING_TIMEOUT = "EMBEDDING_TIMEOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    EMBEDDING_ERROR = "EMBEDDING_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    VECTOR_SEARCH_ERROR = "VECTOR_SEARCH_ERROR"
    CONFLICT = "CONFLICT"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    DOCUMENT_NOT_READY = "DOCUMENT_NOT_READY"


# Failures worth another attempt at the orchestration layer
TRANSIENT_ERRORS = frozenset(
    {
        ErrorCode.EMBEDDING_TIMEOUT,
        ErrorCode.EMBEDDING_ERROR,
        ErrorCode.STORAGE_ERROR,
    }
)


class RAGError(Exception):
    """Base class for pipeline errors."""

    default_code = ErrorCode.EMBEDDING_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code or self.default_code)

    def __str__(self):
        return f"[{self.code}] {self.message}"

    @property
    def is_transient(self) -> bool:
        return self.code in TRANSIENT_ERRORS


class ChunkingError(RAGError):
    default_code = ErrorCode.EMPTY_CONTENT


class EmbeddingError(RAGError):
    default_code = ErrorCode.EMBEDDING_ERROR


class QueryVectorizationError(RAGError):
    default_code = ErrorCode.EMBEDDING_ERROR


class VectorSearchError(RAGError):
    default_code = ErrorCode.VECTOR_SEARCH_ERROR


class DocumentConflictError(RAGError):
    default_code = ErrorCode.CONFLICT


class DocumentNotFoundError(RAGError):
    default_code = ErrorCode.DOCUMENT_NOT_FOUND


class DocumentNotReadyError(RAGError):
    default_code = ErrorCode.DOCUMENT_NOT_READY


_TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout")
_QUOTA_MARKERS = ("quota", "rate limit", "ratelimit", "429", "insufficient_quota")


def classify_provider_error(exc: BaseException) -> ErrorCode:
    """Map a provider exception to EMBEDDING_TIMEOUT, QUOTA_EXCEEDED or EMBEDDING_ERROR.

    Checks the exception type first (``openai.APITimeoutError``, ``TimeoutError``,
    ``openai.RateLimitError`` or anything carrying ``status_code == 429``) and falls
    back to the message, walking the ``__cause__`` chain.
    """
    import openai

    seen = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))

        if isinstance(current, (openai.APITimeoutError, TimeoutError)):
            return ErrorCode.EMBEDDING_TIMEOUT
        if isinstance(current, openai.RateLimitError):
            return ErrorCode.QUOTA_EXCEEDED
        if getattr(current, "status_code", None) == 429:
            return ErrorCode.QUOTA_EXCEEDED

        message = f"{type(current).__name__}: {current}".lower()
        if any(marker in message for marker in _TIMEOUT_MARKERS):
            return ErrorCode.EMBEDDING_TIMEOUT
        if any(marker in message for marker in _QUOTA_MARKERS):
            return ErrorCode.QUOTA_EXCEEDED

        current = current.__cause__ or current.__context__

    return ErrorCode.EMBEDDING_ERROR
