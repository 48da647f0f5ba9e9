"""
Django management command to (re)process documents through the RAG pipeline.

Chunks, embeds and stores vectors for the given documents, or for every READY
document that has no chunks yet.
"""

import logging
import time
import uuid

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Q
from django.utils import timezone

from django_ai_rag.contrib.documents.models import Document, DocumentStatus
from django_ai_rag.contrib.documents.processing import DocumentProcessor

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Chunk and embed documents"

    def add_arguments(self, parser):
        parser.add_argument(
            "document_ids",
            nargs="*",
            help="Specific document ids to process (if not specified, processes "
            "READY documents without chunks)",
        )
        parser.add_argument(
            "--include-failed",
            action="store_true",
            help="Also process FAILED documents",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be processed without actually processing",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Enable verbose output",
        )

    def handle(self, *args, **options):
        document_ids = options.get("document_ids", [])
        include_failed = options["include_failed"]
        dry_run = options["dry_run"]
        verbose = options["verbose"]

        if verbose:
            logger.setLevel(logging.DEBUG)

        start_time = time.time()
        self.stdout.write(self.style.SUCCESS("Starting document processing..."))
        self.stdout.write(f"Started at: {timezone.now()}")

        documents = self._select_documents(document_ids, include_failed)
        if not documents:
            self.stdout.write(self.style.WARNING("No documents to process"))
            return

        self.stdout.write(f"Found {len(documents)} document(s) to process:")
        for document in documents:
            self.stdout.write(f"  - {document.pk} {document.filename} [{document.status}]")

        if dry_run:
            self.stdout.write(
                self.style.WARNING("DRY RUN: Would process the above documents")
            )
            return

        success_count, failure_count = self._process_sequential(documents, verbose)

        elapsed_time = time.time() - start_time
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("=== Processing Summary ==="))
        self.stdout.write(f"Total documents processed: {len(documents)}")
        self.stdout.write(f"Successful: {success_count}")

        if failure_count > 0:
            self.stdout.write(self.style.ERROR(f"Failed: {failure_count}"))

        self.stdout.write(f"Total time: {elapsed_time:.2f} seconds")
        self.stdout.write(f"Completed at: {timezone.now()}")

        if failure_count > 0:
            raise CommandError(f"Failed to process {failure_count} document(s)")

    def _select_documents(
        self, document_ids: list[str], include_failed: bool
    ) -> list[Document]:
        if document_ids:
            requested = [self._parse_id(pk) for pk in document_ids]

            documents = {
                document.pk: document
                for document in Document.objects.filter(pk__in=requested)
            }
            missing = [str(pk) for pk in requested if pk not in documents]
            if missing:
                raise CommandError(f"Unknown document ids: {missing}")
            return [documents[pk] for pk in dict.fromkeys(requested)]

        condition = Q(status=DocumentStatus.READY, chunks__isnull=True)
        if include_failed:
            condition |= Q(status=DocumentStatus.FAILED)
        return list(
            Document.objects.filter(condition).distinct().order_by("uploaded_at")
        )

    def _parse_id(self, value: str) -> uuid.UUID:
        try:
            return uuid.UUID(value)
        except ValueError as e:
            raise CommandError(f"Invalid document id: '{value}'") from e

    def _process_sequential(
        self, documents: list[Document], verbose: bool
    ) -> tuple[int, int]:
        """Process documents one at a time."""
        processor = DocumentProcessor()
        success_count = 0
        failure_count = 0

        for i, document in enumerate(documents, 1):
            try:
                start_time = time.time()
                self.stdout.write(
                    f"\n[{i}/{len(documents)}] Processing document: {document.filename}"
                )

                processed = processor.process(document.pk)
                elapsed = time.time() - start_time

                self.stdout.write(
                    self.style.SUCCESS(
                        f"  ✓ Stored {processed.chunks_count} chunks for "
                        f"'{document.filename}' in {elapsed:.2f}s"
                    )
                )
                success_count += 1

            except Exception as e:
                self.stdout.write(
                    self.style.ERROR(f"  ✗ Failed to process '{document.filename}': {e}")
                )
                if verbose:
                    import traceback

                    self.stdout.write(traceback.format_exc())
                failure_count += 1

        return success_count, failure_count
