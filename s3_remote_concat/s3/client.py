"""boto3 implementation of the storage interface."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..exceptions import StorageError, StoragePermissionError, TransientIOError
from .storage import ObjectPage, ObjectRef, PartResult

PERMISSION_ERROR_CODES = {
    "AccessDenied",
    "AllAccessDisabled",
    "AccountProblem",
    "InvalidAccessKeyId",
    "InvalidToken",
    "ExpiredToken",
    "SignatureDoesNotMatch",
    "403",
}

TRANSIENT_ERROR_CODES = {
    "InternalError",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "500",
    "502",
    "503",
    "504",
}

_CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


def describe_client_error(exc: ClientError) -> str:
    """Return the service's own message for a client error, falling back to its code."""
    error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
    message = error.get("Message")
    if message:
        return str(message)
    code = error.get("Code")
    if code:
        return str(code)
    return str(exc)


def classify_error(exc: Exception, action: str) -> StorageError:
    """Convert a botocore failure into the package's storage error taxonomy."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
        code = str(error.get("Code", ""))
        message = f"Unable to {action}: {describe_client_error(exc)}"
        if code in PERMISSION_ERROR_CODES:
            return StoragePermissionError(message, code=code)
        if code in TRANSIENT_ERROR_CODES:
            return TransientIOError(message, code=code)
        return StorageError(message, code=code or None)
    if isinstance(exc, _CONNECTION_ERRORS):
        return TransientIOError(f"Unable to {action}: {exc}")
    return StorageError(f"Unable to {action}: {exc}")


class Boto3Storage:
    """Runs multipart-copy operations against S3 through a boto3 client."""

    def __init__(self, s3_client) -> None:
        self.s3_client = s3_client

    def list_page(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ObjectPage:
        """Fetch one page of object listings beneath the given bucket/prefix."""
        params: Dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = self.s3_client.list_objects_v2(**params)
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(exc, f"list objects for s3://{bucket}/{prefix}") from exc

        objects: List[ObjectRef] = []
        for entry in response.get("Contents", []):
            key = entry.get("Key")
            if not key:
                continue
            objects.append(ObjectRef(key=key, size=int(entry.get("Size", 0))))

        next_token = None
        if response.get("IsTruncated"):
            next_token = response.get("NextContinuationToken")
        return ObjectPage(objects=tuple(objects), next_token=next_token)

    def open_multipart_session(self, bucket: str, key: str) -> str:
        try:
            response = self.s3_client.create_multipart_upload(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(exc, f"create multipart upload for s3://{bucket}/{key}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError(f"Multipart upload for s3://{bucket}/{key} did not return an UploadId.")
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
        try:
            response = self.s3_client.upload_part_copy(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                CopySource={"Bucket": source_bucket, "Key": source_key},
            )
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(
                exc, f"copy s3://{source_bucket}/{source_key} into part {part_number} of {upload_id}"
            ) from exc

        etag = response.get("CopyPartResult", {}).get("ETag")
        if not etag:
            raise StorageError(f"Part {part_number} of upload {upload_id} did not return an ETag.")
        return PartResult(part_number=part_number, etag=etag)

    def commit(self, bucket: str, key: str, upload_id: str, parts: Sequence[PartResult]) -> None:
        try:
            self.s3_client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": part.part_number} for part in parts
                    ]
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(exc, f"complete multipart upload {upload_id}") from exc

    def abort(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            self.s3_client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(exc, f"abort multipart upload {upload_id}") from exc

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise classify_error(exc, f"delete s3://{bucket}/{key}") from exc
