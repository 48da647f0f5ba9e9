import logging

from django.db import DatabaseError, models, transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest
from django.utils import timezone
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from django_ai_rag.conf import get_setting

from .blob import BlobStorage
from .models import Document, UserUsage
from .result_cache import invalidate_cached_results
from .schema import DeletionResult
from .storage import VectorStore

logger = logging.getLogger(__name__)


class DocumentDeletionService:
    """
    Deletes a document's vectors, its uploaded file and its database rows.

    Vector deletion must succeed before anything else is touched, so a failure
    leaves the document in place to be deleted again later. A file that can't be
    removed from blob storage only produces a warning.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        blob_storage: BlobStorage,
        *,
        retry_attempts: int | None = None,
        retry_wait=None,
    ):
        self.vector_store = vector_store
        self.blob_storage = blob_storage
        self.retry_attempts = retry_attempts or get_setting("RETRY_ATTEMPTS")
        self.retry_wait = retry_wait or wait_exponential(
            multiplier=get_setting("RETRY_BASE_DELAY"), max=4
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def delete(self, document_id) -> DeletionResult:
        result = DeletionResult(document_id=str(document_id))

        document = Document.objects.filter(pk=document_id).first()
        if document is None:
            logger.info(f"Document {document_id} not found, nothing to delete")
            result.found = False
            return result

        chunk_ids = [str(pk) for pk in document.chunks.values_list("pk", flat=True)]
        if chunk_ids:
            try:
                for attempt in self._retrying():
                    with attempt:
                        self.vector_store.delete_batch(chunk_ids)
            except Exception as e:
                logger.error(
                    f"Failed to delete {len(chunk_ids)} vectors for document "
                    f"{document.pk} after {self.retry_attempts} attempts: {e}"
                )
                result.warnings.append(f"Vector deletion failed: {e}")
                return result
        result.vectors = True

        if document.storage_path:
            try:
                for attempt in self._retrying():
                    with attempt:
                        self.blob_storage.delete_file(document.storage_path)
                result.storage = True
            except Exception as e:
                logger.warning(
                    f"Failed to delete file {document.storage_path} for document "
                    f"{document.pk}: {e}"
                )
                result.warnings.append(
                    f"File {document.storage_path} could not be deleted: {e}"
                )
        else:
            result.storage = True

        try:
            with transaction.atomic():
                Document.objects.filter(pk=document.pk).delete()
                UserUsage.objects.filter(user_id=document.owner_id).update(
                    document_count=Greatest(
                        F("document_count") - 1,
                        Value(0),
                        output_field=models.PositiveIntegerField(),
                    ),
                    storage_used=Greatest(
                        F("storage_used") - document.file_size,
                        Value(0),
                        output_field=models.PositiveBigIntegerField(),
                    ),
                    updated_at=timezone.now(),
                )
            result.database = True
        except DatabaseError as e:
            logger.exception(f"Failed to delete document {document.pk} from the database")
            result.warnings.append(f"Database deletion failed: {e}")
            return result

        invalidate_cached_results(document.pk)
        logger.info(
            f"Deleted document {document.pk}: {len(chunk_ids)} vectors, "
            f"file removed={result.storage}"
        )
        return result


def get_deletion_service() -> DocumentDeletionService:
    from .services import get_blob_storage, get_vector_store

    return DocumentDeletionService(get_vector_store(), get_blob_storage())


def delete_document_vectors_and_data(document_id) -> DeletionResult:
    return get_deletion_service().delete(document_id)
