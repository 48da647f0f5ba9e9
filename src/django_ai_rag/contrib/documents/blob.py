from abc import ABC, abstractmethod

import boto3
from django.core.files.storage import default_storage

from django_ai_rag.conf import get_setting


class BlobStorage(ABC):
    """Base class for the store holding uploaded document files."""

    @abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete the file at ``path``. Deleting a missing file is not an error."""
        pass


class DjangoBlobStorage(BlobStorage):
    """Blob storage through Django's ``default_storage``."""

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def delete_file(self, path: str) -> None:
        self.storage.delete(path)


class S3BlobStorage(BlobStorage):
    """Blob storage in an S3 bucket."""

    def __init__(
        self,
        *,
        bucket_name: str | None = None,
        region_name: str | None = None,
        client=None,
    ):
        self.bucket_name = bucket_name or get_setting("S3_BUCKET")
        self.client = client or boto3.client(
            "s3", region_name=region_name or get_setting("S3_REGION")
        )

    def delete_file(self, path: str) -> None:
        self.client.delete_object(Bucket=self.bucket_name, Key=path)
