"""Shared fixtures: an in-memory stand-in for the S3 multipart API."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from s3_remote_concat.config import ConcatSettings
from s3_remote_concat.exceptions import StorageError
from s3_remote_concat.s3.storage import ObjectPage, ObjectRef, PartResult

MiB = 1024 * 1024

MUTATING_METHODS = ("open_multipart_session", "copy_segment", "commit", "abort", "delete")


@dataclass
class _Failure:
    method: str
    error: Exception
    times: Optional[int] = None
    source_key: Optional[str] = None


class FakeStorage:
    """Keeps objects in a dict and records every call made against it.

    Committed objects are stored with the ordered list of source keys they
    were assembled from, so tests can check byte order without bytes.
    """

    def __init__(self, objects: Iterable[Tuple[str, int]] = (), bucket: str = "bucket", page_size: int = 1000):
        self.bucket = bucket
        self.page_size = page_size
        self.objects: Dict[str, int] = dict(objects)
        self.assembled: Dict[str, List[str]] = {}
        self.uploads: Dict[str, Dict] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: List[_Failure] = []
        self._counter = 0
        self._lock = threading.Lock()

    def fail(self, method: str, error: Exception, *, times: Optional[int] = None, source_key: Optional[str] = None) -> None:
        self._failures.append(_Failure(method, error, times, source_key))

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    def mutating_calls(self) -> List[Tuple[str, tuple]]:
        return [(name, args) for name, args in self.calls if name in MUTATING_METHODS]

    def _record(self, method: str, *args, source_key: Optional[str] = None) -> None:
        with self._lock:
            self.calls.append((method, args))
            for failure in self._failures:
                if failure.method != method:
                    continue
                if failure.source_key is not None and failure.source_key != source_key:
                    continue
                if failure.times is not None:
                    if failure.times <= 0:
                        continue
                    failure.times -= 1
                raise failure.error

    def list_page(self, bucket: str, prefix: str, continuation_token: Optional[str] = None) -> ObjectPage:
        self._record("list_page", bucket, prefix, continuation_token)
        keys = sorted(key for key in self.objects if key.startswith(prefix))
        start = int(continuation_token or 0)
        chunk = keys[start:start + self.page_size]
        next_start = start + self.page_size
        next_token = str(next_start) if next_start < len(keys) else None
        return ObjectPage(
            objects=tuple(ObjectRef(key=key, size=self.objects[key]) for key in chunk),
            next_token=next_token,
        )

    def open_multipart_session(self, bucket: str, key: str) -> str:
        self._record("open_multipart_session", bucket, key)
        with self._lock:
            self._counter += 1
            upload_id = f"upload-{self._counter}"
            self.uploads[upload_id] = {"key": key, "parts": {}, "state": "open"}
        return upload_id

    def copy_segment(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        source_bucket: str,
        source_key: str,
    ) -> PartResult:
        self._record("copy_segment", bucket, key, upload_id, part_number, source_bucket, source_key, source_key=source_key)
        with self._lock:
            self.uploads[upload_id]["parts"][part_number] = source_key
        return PartResult(part_number=part_number, etag=f'"etag-{upload_id}-{part_number}"')

    def commit(self, bucket: str, key: str, upload_id: str, parts: Sequence[PartResult]) -> None:
        self._record("commit", bucket, key, upload_id, tuple(parts))
        with self._lock:
            upload = self.uploads[upload_id]
            numbers = [part.part_number for part in parts]
            if numbers != list(range(1, len(upload["parts"]) + 1)):
                raise StorageError(f"InvalidPartOrder: {numbers}")
            sources = [upload["parts"][number] for number in numbers]
            self.assembled[key] = sources
            self.objects[key] = sum(self.objects[source] for source in sources)
            upload["state"] = "committed"

    def abort(self, bucket: str, key: str, upload_id: str) -> None:
        self._record("abort", bucket, key, upload_id)
        with self._lock:
            self.uploads[upload_id]["state"] = "aborted"

    def delete(self, bucket: str, key: str) -> None:
        self._record("delete", bucket, key, source_key=key)
        with self._lock:
            self.objects.pop(key, None)


@pytest.fixture
def settings() -> ConcatSettings:
    return ConcatSettings(retry_count=2, retry_delay=0.0, retry_backoff=1.0, part_concurrency=4, target_concurrency=2)


@pytest.fixture
def restore_root_logger():
    """Undo handler changes made by configure_logging."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
