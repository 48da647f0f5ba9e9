import uuid
from typing import Self, Sequence

from django.conf import settings
from django.db import models
from django.utils import timezone
from pgvector.django import CosineDistance, VectorField


class DocumentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PARSING = "PARSING", "Parsing"
    EMBEDDING = "EMBEDDING", "Embedding"
    READY = "READY", "Ready"
    FAILED = "FAILED", "Failed"


class Document(models.Model):
    """
    An uploaded document.

    ``content`` holds the plain text written by the external parser; this app only
    reads it. ``metadata`` collects pipeline bookkeeping under the ``error``,
    ``chunking`` and ``embedding`` keys.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="rag_documents",
    )
    filename = models.CharField(max_length=255)
    file_size = models.PositiveBigIntegerField(default=0)
    storage_path = models.CharField(max_length=1024, blank=True)
    status = models.CharField(
        max_length=16,
        choices=DocumentStatus.choices,
        default=DocumentStatus.PENDING,
        db_index=True,
    )
    content = models.TextField(blank=True)
    chunks_count = models.PositiveIntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)
    uploaded_at = models.DateTimeField(auto_now_add=True)
    parsed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "django_ai_rag_document"
        indexes = [
            models.Index(fields=["owner", "status"], name="rag_document_owner_status"),
        ]

    def __str__(self):
        return self.filename

    def mark_failed(self, error_type: str, message: str) -> None:
        """Set FAILED and record a structured error the UI can show."""
        self.status = DocumentStatus.FAILED
        self.metadata = {
            **(self.metadata or {}),
            "error": {
                "type": str(error_type),
                "message": message,
                "timestamp": timezone.now().isoformat(),
            },
        }
        self.save(update_fields=["status", "metadata"])

    def mark_ready(self, *, chunks_count: int, embedding: dict) -> None:
        metadata = {**(self.metadata or {}), "embedding": embedding}
        metadata.pop("error", None)
        self.status = DocumentStatus.READY
        self.chunks_count = chunks_count
        self.metadata = metadata
        self.save(update_fields=["status", "chunks_count", "metadata"])


class DocumentChunk(models.Model):
    """A bounded slice of a document's parsed text."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    document = models.ForeignKey(
        Document, on_delete=models.CASCADE, related_name="chunks"
    )
    chunk_index = models.PositiveIntegerField()
    content = models.TextField()
    length = models.PositiveIntegerField()
    # Character offsets into Document.content
    start_offset = models.PositiveIntegerField()
    end_offset = models.PositiveIntegerField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "django_ai_rag_document_chunk"
        ordering = ["document", "chunk_index"]
        constraints = [
            models.UniqueConstraint(
                fields=["document", "chunk_index"],
                name="unique_document_chunk_index",
            ),
        ]

    def __str__(self):
        return f"{self.document_id}#{self.chunk_index}"


class ChunkEmbeddingQuerySet(models.QuerySet["ChunkEmbedding"]):
    def annotate_with_distance(self, query_vector: Sequence[float]) -> Self:
        return self.annotate(distance=CosineDistance("vector", query_vector))

    def owned_by(self, owner_id) -> Self:
        return self.filter(document__owner_id=owner_id)


class ChunkEmbeddingManager(models.Manager.from_queryset(ChunkEmbeddingQuerySet)):
    pass


class ChunkEmbedding(models.Model):
    """
    The vector for one chunk.

    Content and chunk metadata are denormalised onto the row so a similarity search
    returns everything the prompt builder needs without another lookup.
    """

    chunk = models.OneToOneField(
        DocumentChunk,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="embedding",
    )
    document = models.ForeignKey(
        Document, on_delete=models.CASCADE, related_name="embeddings"
    )
    content = models.TextField()
    metadata = models.JSONField(default=dict)
    vector = VectorField()
    provider = models.CharField(max_length=64)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ChunkEmbeddingManager()

    class Meta:
        db_table = "django_ai_rag_chunk_embedding"

    def __str__(self):
        return f"ChunkEmbedding({self.chunk_id})"


class UserUsage(models.Model):
    """Per-user usage counters."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="rag_usage",
    )
    document_count = models.PositiveIntegerField(default=0)
    storage_used = models.PositiveBigIntegerField(default=0)
    query_count = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "django_ai_rag_user_usage"

    def __str__(self):
        return f"UserUsage({self.user_id})"


class QueryEmbeddingCacheEntry(models.Model):
    """
    Cached query embedding for the database cache backend.

    Entries are scoped by ``namespace`` (one per provider) and keyed by a digest of the
    normalized query and the vector dimension, so vectors from different providers or
    dimensions never collide. Rows past ``expires_at`` are treated as absent and
    removed by ``purge_embedding_cache --expired``.
    """

    namespace = models.CharField(max_length=64)
    digest = models.CharField(max_length=64)
    vector = models.JSONField()
    dimensions = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = "django_ai_rag_query_embedding_cache"
        constraints = [
            models.UniqueConstraint(
                fields=["namespace", "digest"],
                name="unique_query_embedding_cache",
            ),
        ]

    def __str__(self):
        return f"QueryEmbeddingCacheEntry({self.namespace}:{self.digest[:12]}...)"
