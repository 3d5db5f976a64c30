"""Drives one multipart-copy session from open to commit or abort."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..exceptions import (
    OperationCancelled,
    OrchestrationFailure,
    StorageError,
    StoragePermissionError,
)
from ..planning.models import Group
from ..s3.file_matcher import MatchedObject
from ..s3.storage import PartResult, StorageClient
from ..utils.progress import ProgressTracker
from ..utils.retry import RetryPolicy
from .session import SessionState, UploadSession

LOGGER = logging.getLogger(__name__)

COMMIT_ATTEMPTS = 2


@dataclass
class GroupOutcome:
    """What happened to one group's multipart session."""

    group: Group
    committed: bool = False
    upload_id: Optional[str] = None
    error: Optional[str] = None
    abort_error: Optional[str] = None
    cancelled: bool = False


class UploadOrchestrator:
    """Opens a session, copies every source object into it as a part, then commits.

    Once a session is open it always ends committed or aborted, whichever
    way control leaves ``run``.
    """

    def __init__(
        self,
        storage: StorageClient,
        bucket: str,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        part_concurrency: int = 8,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> None:
        self.storage = storage
        self.bucket = bucket
        self.retry_policy = retry_policy or RetryPolicy()
        self.part_concurrency = max(part_concurrency, 1)
        self.cancel_event = cancel_event or threading.Event()
        self.progress = progress

    def run(self, group: Group) -> GroupOutcome:
        outcome = GroupOutcome(group=group)

        try:
            upload_id = self.retry_policy.call(
                lambda: self.storage.open_multipart_session(self.bucket, group.target_key),
                f"opening a multipart upload for {group.target_key}",
                self.cancel_event,
            )
        except OperationCancelled as exc:
            outcome.cancelled = True
            outcome.error = str(exc)
            return outcome
        except StorageError as exc:
            LOGGER.error("Unable to start upload for %s: %s", group.target_key, exc)
            outcome.error = str(exc)
            return outcome

        session = UploadSession(bucket=self.bucket, target_key=group.target_key, upload_id=upload_id)
        outcome.upload_id = upload_id
        LOGGER.debug("Opened upload %s for %s", upload_id, group.target_key)

        try:
            session.transition(SessionState.PARTS_UPLOADING)
            session.record_parts(self._copy_parts(session, group))
            session.transition(SessionState.COMMITTING)
            self._commit(session)
            session.transition(SessionState.COMMITTED)
            outcome.committed = True
            LOGGER.info(
                "Committed %s from %s part(s) (%s bytes)",
                group.target_key,
                len(session.parts),
                group.total_size,
            )
        except OperationCancelled as exc:
            outcome.cancelled = True
            outcome.error = str(exc)
        except OrchestrationFailure as exc:
            LOGGER.error("Upload %s for %s failed: %s", upload_id, group.target_key, exc)
            outcome.error = str(exc)
        finally:
            if not session.is_terminal:
                outcome.abort_error = self._abort(session)

        return outcome

    def _copy_parts(self, session: UploadSession, group: Group) -> List[PartResult]:
        """Copy all parts concurrently and wait for every one before returning."""
        stop = threading.Event()
        results: List[PartResult] = []
        failure: Optional[Exception] = None

        workers = min(self.part_concurrency, len(group.objects))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map: Dict = {
                executor.submit(self._copy_part, session, part_number, matched, stop): part_number
                for part_number, matched in enumerate(group.objects, start=1)
            }
            for future in as_completed(future_map):
                if future.cancelled():
                    continue
                try:
                    results.append(future.result())
                except (StorageError, OperationCancelled) as exc:
                    if failure is None:
                        failure = exc
                    stop.set()
                    for pending in future_map:
                        pending.cancel()

        if isinstance(failure, OperationCancelled) and self.cancel_event.is_set():
            raise failure
        if failure is not None:
            raise OrchestrationFailure(f"Part copy failed: {failure}") from failure
        return results

    def _copy_part(
        self,
        session: UploadSession,
        part_number: int,
        matched: MatchedObject,
        stop: threading.Event,
    ) -> PartResult:
        if stop.is_set() or self.cancel_event.is_set():
            raise OperationCancelled(f"Cancelled before copying part {part_number} of {session.upload_id}")

        result = self.retry_policy.call(
            lambda: self.storage.copy_segment(
                session.bucket,
                session.target_key,
                session.upload_id,
                part_number,
                self.bucket,
                matched.key,
            ),
            f"copying {matched.key} into part {part_number} of {session.target_key}",
            self.cancel_event,
        )
        if self.progress is not None:
            self.progress.advance()
        return result

    def _commit(self, session: UploadSession) -> None:
        attempts = 0
        while True:
            if self.cancel_event.is_set():
                raise OperationCancelled(f"Cancelled before committing {session.upload_id}")
            attempts += 1
            try:
                self.storage.commit(session.bucket, session.target_key, session.upload_id, session.parts)
                return
            except StoragePermissionError as exc:
                raise OrchestrationFailure(f"Commit refused: {exc}") from exc
            except StorageError as exc:
                if attempts >= COMMIT_ATTEMPTS:
                    raise OrchestrationFailure(f"Commit failed after {attempts} attempts: {exc}") from exc
                LOGGER.warning("Commit of %s failed, retrying once: %s", session.upload_id, exc)
                if self.cancel_event.wait(self.retry_policy.retry_delay):
                    raise OperationCancelled(f"Cancelled while retrying the commit of {session.upload_id}") from exc

    def _abort(self, session: UploadSession) -> Optional[str]:
        """Cancel the session; a failure here is logged and returned, never raised."""
        LOGGER.warning("Aborting %s for %s...", session.upload_id, session.target_key)
        abort_error: Optional[str] = None
        try:
            self.storage.abort(session.bucket, session.target_key, session.upload_id)
        except StorageError as exc:
            abort_error = str(exc)
            LOGGER.error(
                "Unable to abort %s; the incomplete upload may need manual cleanup: %s",
                session.upload_id,
                exc,
            )
        session.transition(SessionState.ABORTED)
        return abort_error
