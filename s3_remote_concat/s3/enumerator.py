"""S3 object discovery utilities."""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Tuple

from ..exceptions import ConfigurationError
from ..utils.retry import RetryPolicy
from .storage import ObjectPage, ObjectRef, StorageClient

LOGGER = logging.getLogger(__name__)


def parse_bucket_prefix(value: str) -> Tuple[str, str]:
    """Split ``s3://bucket/prefix/`` into ``("bucket", "prefix")``.

    The scheme and the prefix are optional; a trailing slash on the prefix is dropped.
    """
    remainder = value.strip()
    if remainder.startswith("s3://"):
        remainder = remainder[len("s3://"):]
    bucket, _, prefix = remainder.partition("/")
    if not bucket:
        raise ConfigurationError(f"No bucket name found in '{value}'.")
    return bucket, prefix.rstrip("/")


class SourceEnumerator:
    """Lists candidate objects lazily, hiding the listing pagination."""

    def __init__(self, storage: StorageClient, retry_policy: Optional[RetryPolicy] = None):
        self.storage = storage
        self.retry_policy = retry_policy or RetryPolicy()

    def iter_pages(self, bucket: str, prefix: str) -> Iterator[ObjectPage]:
        """Yield listing pages one at a time; the next page is fetched on demand."""
        token: Optional[str] = None
        page_number = 0
        while True:
            page_number += 1
            current_token = token
            page = self.retry_policy.call(
                lambda: self.storage.list_page(bucket, prefix, current_token),
                f"listing page {page_number} of s3://{bucket}/{prefix}",
            )
            LOGGER.debug(
                "Listed %s objects on page %s of s3://%s/%s",
                len(page.objects),
                page_number,
                bucket,
                prefix,
            )
            yield page
            if not page.next_token:
                break
            token = page.next_token

    def iter_objects(self, bucket: str, prefix: str) -> Iterator[ObjectRef]:
        """Yield every object beneath the prefix, skipping folder placeholders."""
        for page in self.iter_pages(bucket, prefix):
            for obj in page.objects:
                if obj.key.endswith("/"):
                    continue
                yield obj
