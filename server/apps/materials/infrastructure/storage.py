"""Custom storage backend for S3-compatible blob tiers."""

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any, final, override

from storages.backends.s3 import S3Storage

logger = logging.getLogger(__name__)


@final
class TierStorage(S3Storage):
    """S3 storage backend for one blob tier.

    Extends django-storages S3Storage with:
    - The upload/download/remove/public_url surface used by the
      materials and contribution logic
    - Rollback support for failed DB operations
    - Enhanced error logging
    """

    @override
    def save(  # noqa: WPS211
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save file to S3 with error handling and logging.

        Args:
            name: Storage key for the file.
            content: File content (file-like object).
            max_length: Optional maximum length for the key.

        Returns:
            Actual storage key used (may differ from name if conflicts).

        Raises:
            Exception: If S3 upload fails.
        """
        try:
            logger.info('Uploading object to %s: %s', self.bucket_name, name)
            saved_name = super().save(name, content, max_length)
            logger.info('Successfully uploaded object: %s', saved_name)
        except Exception:
            logger.exception('Failed to upload object to storage: %s', name)
            raise
        else:
            return saved_name

    @override
    def delete(self, name: str) -> None:
        """Delete object from S3 with error handling and logging.

        Args:
            name: Storage key of object to delete.

        Raises:
            Exception: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from %s: %s', self.bucket_name, name)
            super().delete(name)
            logger.info('Successfully deleted object: %s', name)
        except Exception:
            logger.exception('Failed to delete object from storage: %s', name)
            raise

    def upload(self, key: str, content: Any) -> str:
        """Upload content under ``key``.

        Args:
            key: Requested storage key.
            content: File-like object or Django File.

        Returns:
            Storage key actually used.
        """
        return self.save(key, content)

    def download(self, key: str) -> bytes:
        """Read the whole object.

        Args:
            key: Storage key.

        Returns:
            Object bytes.

        Raises:
            Exception: If the object is missing or S3 read fails.
        """
        try:
            with self.open(key, 'rb') as handle:
                return handle.read()
        except Exception:
            logger.exception('Failed to download object: %s', key)
            raise

    def remove(self, key: str) -> None:
        """Delete the object stored under ``key``."""
        self.delete(key)

    def public_url(self, key: str) -> str | None:
        """Get a download URL for an object.

        Args:
            key: Storage key.

        Returns:
            URL (presigned when query string auth is on), or None when
            the object does not exist.
        """
        if not self.exists(key):
            logger.warning('No object to build URL for: %s', key)
            return None
        return self.url(key)

    def iter_keys(
        self,
        prefix: str = '',
        modified_before: datetime | None = None,
    ) -> Iterator[str]:
        """Iterate over every key under ``prefix``.

        Args:
            prefix: Key prefix, empty for the whole bucket.
            modified_before: Only yield objects last written at or
                before this time.

        Yields:
            Object keys.
        """
        for summary in self.bucket.objects.filter(Prefix=prefix):
            if modified_before and summary.last_modified > modified_before:
                continue
            yield summary.key

    def rollback_upload(self, name: str) -> None:
        """Delete uploaded object for DB transaction rollback.

        This method is called when a database write fails after an
        object has been successfully uploaded to S3. It attempts to
        delete the object to maintain consistency.

        This is a best-effort operation - if deletion fails, the error
        is logged but not raised, as the DB rollback has already occurred.

        Args:
            name: Storage key of object to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting object: %s', name)
            self.delete(name)
            logger.info('Successfully rolled back upload: %s', name)
        except Exception:
            # The object stays in storage without a metadata row;
            # the reconciliation sweep reports it.
            logger.exception(
                'Failed to rollback upload, orphaned object: %s',
                name,
            )

    def copy_object(self, source: str, destination: str) -> str:
        """Server-side copy of an object inside this bucket.

        Args:
            source: Source storage key.
            destination: Requested destination key.

        Returns:
            Destination key actually used (made unique if taken).

        Raises:
            Exception: If the copy fails.
        """
        destination = self.get_available_name(destination)
        try:
            logger.info('Copying object: %s -> %s', source, destination)
            copy_source = {
                'Bucket': self.bucket_name,
                'Key': source,
            }
            self.bucket.copy(copy_source, destination)
        except Exception:
            logger.exception('Copy failed: %s -> %s', source, destination)
            raise
        return destination
