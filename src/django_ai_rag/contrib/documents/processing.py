"""
Document processing: chunking, embedding and storing vectors.

``chunk_document`` and ``EmbeddingService`` are single-attempt building blocks.
``DocumentProcessor`` ties them together behind the document status lock and retries
transient embedding failures.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from django.db import transaction
from django.utils import timezone
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from django_ai_rag.conf import get_setting
from django_ai_rag.exceptions import (
    ChunkingError,
    DocumentConflictError,
    DocumentNotReadyError,
    EmbeddingError,
    ErrorCode,
    RAGError,
    classify_provider_error,
)

from .chunking import ChunkTransformer, RecursiveChunkTransformer
from .embedding import EmbeddingProvider
from .models import Document, DocumentChunk, DocumentStatus
from .result_cache import invalidate_cached_results
from .schema import Chunk, VectorRecord
from .storage import VectorStore

logger = logging.getLogger(__name__)


def get_chunker() -> RecursiveChunkTransformer:
    return RecursiveChunkTransformer(
        chunk_size=get_setting("CHUNK_SIZE"),
        chunk_overlap=get_setting("CHUNK_OVERLAP"),
    )


# Statuses a document must be in before its chunk rows may be rewritten
CHUNKABLE_STATUSES = (DocumentStatus.READY, DocumentStatus.FAILED)


def unavailable_error(document_id, status) -> RAGError:
    """The error for a document that can't be (re)processed in its current status."""
    if status == DocumentStatus.PENDING:
        return DocumentNotReadyError(f"Document {document_id} has not been parsed yet")
    return DocumentConflictError(
        f"Document {document_id} is already being processed ({status})"
    )


def chunk_document(
    document_id,
    *,
    chunker: ChunkTransformer | None = None,
    max_chunks: int | None = None,
) -> list[Chunk]:
    """
    Split a document's parsed content into chunk rows, replacing any existing ones.

    Only READY or FAILED documents are chunked. PENDING raises DOCUMENT_NOT_READY and
    a document being parsed or embedded raises CONFLICT, both before anything is
    written. Empty or whitespace-only content marks the document FAILED with
    EMPTY_CONTENT. When the split produces more than ``max_chunks`` chunks the rest
    are dropped and the truncation is recorded in ``metadata["chunking"]``.
    """
    document = Document.objects.get(pk=document_id)
    if document.status not in CHUNKABLE_STATUSES:
        raise unavailable_error(document.pk, document.status)
    return write_chunks(document, chunker=chunker, max_chunks=max_chunks)


def write_chunks(
    document: Document,
    *,
    chunker: ChunkTransformer | None = None,
    max_chunks: int | None = None,
) -> list[Chunk]:
    """Chunk a document the caller already holds, without checking its status."""
    content = document.content or ""

    if not content.strip():
        error = ChunkingError(
            "Document has no text content to chunk", ErrorCode.EMPTY_CONTENT
        )
        document.mark_failed(error.code, error.message)
        logger.warning(f"Document {document.pk} has empty content, not chunking")
        raise error

    chunker = chunker or get_chunker()
    max_chunks = get_setting("MAX_CHUNKS") if max_chunks is None else max_chunks

    slices = chunker.transform(content)
    original_count = len(slices)
    truncated = original_count > max_chunks
    if truncated:
        slices = slices[:max_chunks]
        logger.warning(
            f"Document {document.pk} produced {original_count} chunks, "
            f"keeping the first {max_chunks}"
        )

    chunking = {"storedChunksCount": len(slices)}
    if truncated:
        chunking = {
            "truncated": True,
            "originalChunksCount": original_count,
            "storedChunksCount": len(slices),
        }

    with transaction.atomic():
        document.chunks.all().delete()
        rows = DocumentChunk.objects.bulk_create(
            [
                DocumentChunk(
                    document=document,
                    chunk_index=index,
                    content=text_slice.content,
                    length=len(text_slice.content),
                    start_offset=text_slice.start,
                    end_offset=text_slice.end,
                )
                for index, text_slice in enumerate(slices)
            ],
            batch_size=500,
        )
        document.metadata = {**(document.metadata or {}), "chunking": chunking}
        document.save(update_fields=["metadata"])

    logger.info(f"Document {document.pk}: stored {len(rows)} chunks")
    return [Chunk.from_model(row) for row in rows]


class EmbeddingService:
    """Embeds chunks with the provider, validates every vector, then stores them."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        vector_store: VectorStore,
        *,
        batch_size: int | None = None,
        concurrency: int | None = None,
        dimensions: int | None = None,
    ):
        self.provider = provider
        self.vector_store = vector_store
        self.batch_size = batch_size or get_setting("EMBEDDING_BATCH_SIZE")
        self.concurrency = concurrency or get_setting("EMBEDDING_CONCURRENCY")
        self.dimensions = dimensions or provider.dimensions

    def _embed_batch(self, batch: Sequence[Chunk]) -> list[list[float]]:
        return self.provider.embed_batch([chunk.content for chunk in batch])

    def generate_records(
        self, document: Document, chunks: Sequence[Chunk]
    ) -> list[VectorRecord]:
        """
        Embed chunks in batches and validate every vector.

        Raises:
            EmbeddingError: classified provider failures, or DIMENSION_MISMATCH if any
                vector has the wrong length. Nothing has been stored at that point.
        """
        batches = [
            chunks[start : start + self.batch_size]
            for start in range(0, len(chunks), self.batch_size)
        ]

        try:
            if self.concurrency > 1 and len(batches) > 1:
                with ThreadPoolExecutor(
                    max_workers=min(self.concurrency, len(batches))
                ) as executor:
                    batch_vectors = list(executor.map(self._embed_batch, batches))
            else:
                batch_vectors = [self._embed_batch(batch) for batch in batches]
        except RAGError:
            raise
        except Exception as e:
            raise EmbeddingError(
                f"Embedding generation failed: {e}", classify_provider_error(e)
            ) from e

        records = []
        for batch, vectors in zip(batches, batch_vectors, strict=True):
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Provider returned {len(vectors)} vectors for {len(batch)} chunks",
                    ErrorCode.EMBEDDING_ERROR,
                )
            for chunk, vector in zip(batch, vectors, strict=True):
                if len(vector) != self.dimensions:
                    logger.error(
                        f"Dimension mismatch for chunk {chunk.chunk_index} of document "
                        f"{document.pk}: expected {self.dimensions}, got {len(vector)} "
                        f"from provider '{self.provider.provider_name}'"
                    )
                    raise EmbeddingError(
                        f"Vector dimension mismatch: expected {self.dimensions}, "
                        f"received {len(vector)} for chunk {chunk.chunk_index}",
                        ErrorCode.DIMENSION_MISMATCH,
                    )
                records.append(
                    VectorRecord(
                        chunk_id=chunk.id,
                        document_id=str(document.pk),
                        vector=[float(value) for value in vector],
                        content=chunk.content,
                        metadata={
                            **chunk.metadata,
                            "chunk_index": chunk.chunk_index,
                            "length": chunk.length,
                        },
                        provider=self.provider.provider_name,
                    )
                )
        return records

    def store(self, records: Sequence[VectorRecord]) -> None:
        try:
            self.vector_store.upsert_batch(records)
        except RAGError:
            raise
        except Exception as e:
            raise EmbeddingError(
                f"Vector store write failed: {e}", ErrorCode.STORAGE_ERROR
            ) from e

    def embed_and_store(self, document: Document, chunks: Sequence[Chunk]) -> int:
        """Single attempt that leaves the document status alone."""
        records = self.generate_records(document, chunks)
        self.store(records)
        return len(records)

    def mark_ready(self, document: Document, vector_count: int) -> None:
        document.mark_ready(
            chunks_count=vector_count,
            embedding={
                "vectorCount": vector_count,
                "dimension": self.dimensions,
                "provider": self.provider.provider_name,
                "model": self.provider.model,
                "completedAt": timezone.now().isoformat(),
            },
        )
        invalidate_cached_results(document.pk)
        logger.info(f"Document {document.pk}: stored {vector_count} vectors")

    def embed_and_store_chunks(self, document_id, chunks: Sequence[Chunk]) -> None:
        """Embed and store a document's chunks, then mark it READY or FAILED."""
        document = Document.objects.get(pk=document_id)
        try:
            vector_count = self.embed_and_store(document, chunks)
        except RAGError as e:
            logger.error(f"Embedding failed for document {document.pk}: {e}")
            document.mark_failed(e.code, e.message)
            raise
        self.mark_ready(document, vector_count)


def get_embedding_service() -> EmbeddingService:
    from .services import get_embedding_provider, get_vector_store

    return EmbeddingService(get_embedding_provider(), get_vector_store())


def embed_and_store_chunks(document_id, chunks: Sequence[Chunk]) -> None:
    get_embedding_service().embed_and_store_chunks(document_id, chunks)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, RAGError) and exc.is_transient


class DocumentProcessor:
    """
    Runs the full pipeline for a document that has been parsed.

    The document status is the processing lock: only a READY or FAILED document can
    be claimed, by a conditional update to EMBEDDING. Transient embedding failures
    are retried with exponential backoff; anything else fails the document at once.
    """

    claimable_statuses = CHUNKABLE_STATUSES

    def __init__(
        self,
        embedding_service: EmbeddingService | None = None,
        *,
        chunker: ChunkTransformer | None = None,
        max_chunks: int | None = None,
        retry_attempts: int | None = None,
        retry_wait=None,
    ):
        self.embedding_service = embedding_service or get_embedding_service()
        self.chunker = chunker
        self.max_chunks = max_chunks
        self.retry_attempts = retry_attempts or get_setting("RETRY_ATTEMPTS")
        self.retry_wait = retry_wait or wait_exponential(
            multiplier=get_setting("RETRY_BASE_DELAY"), max=4
        )

    def claim(self, document_id) -> Document:
        claimed = Document.objects.filter(
            pk=document_id, status__in=self.claimable_statuses
        ).update(status=DocumentStatus.EMBEDDING)
        if not claimed:
            status = (
                Document.objects.filter(pk=document_id)
                .values_list("status", flat=True)
                .first()
            )
            if status is None:
                raise Document.DoesNotExist(f"Document {document_id} does not exist")
            raise unavailable_error(document_id, status)
        return Document.objects.get(pk=document_id)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _remove_old_vectors(self, document: Document) -> None:
        chunk_ids = [str(pk) for pk in document.chunks.values_list("pk", flat=True)]
        if chunk_ids:
            self.embedding_service.vector_store.delete_batch(chunk_ids)

    def process(self, document_id) -> Document:
        document = self.claim(document_id)
        logger.info(f"Processing document {document.pk} ({document.filename})")

        try:
            self._remove_old_vectors(document)
            chunks = write_chunks(
                document, chunker=self.chunker, max_chunks=self.max_chunks
            )
        except ChunkingError:
            raise
        except Exception as e:
            logger.exception(f"Chunking failed for document {document.pk}")
            document.mark_failed(ErrorCode.STORAGE_ERROR, str(e))
            raise

        document.refresh_from_db()
        try:
            for attempt in self._retrying():
                with attempt:
                    vector_count = self.embedding_service.embed_and_store(
                        document, chunks
                    )
        except RAGError as e:
            logger.error(f"Processing failed for document {document.pk}: {e}")
            document.mark_failed(e.code, e.message)
            raise

        self.embedding_service.mark_ready(document, vector_count)
        return document
