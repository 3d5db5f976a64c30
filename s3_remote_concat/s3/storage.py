"""Storage interface consumed by the concatenation core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class ObjectRef:
    """Snapshot of one stored object at enumeration time."""

    key: str
    size: int


@dataclass(frozen=True)
class ObjectPage:
    """One page of a bucket listing."""

    objects: Tuple[ObjectRef, ...]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class PartResult:
    """A segment copied into a multipart session."""

    part_number: int
    etag: str


class StorageClient(Protocol):
    """Operations the core needs from an object storage service.

    Implementations raise ``TransientIOError`` for failures worth retrying,
    ``StoragePermissionError`` for denied access and ``StorageError`` for
    everything else.
    """

    def list_page(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ObjectPage:
        ...

    def open_multipart_session(self, bucket: str, key: str) -> str:
        ...

    def copy_segment(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        source_bucket: str,
        source_key: str,
    ) -> PartResult:
        ...

    def commit(self, bucket: str, key: str, upload_id: str, parts: Sequence[PartResult]) -> None:
        ...

    def abort(self, bucket: str, key: str, upload_id: str) -> None:
        ...

    def delete(self, bucket: str, key: str) -> None:
        ...
