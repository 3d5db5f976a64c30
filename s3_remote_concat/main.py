"""Core application entry point."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import ConcatSettings, ConfigManager
from .exceptions import ConfigurationError, StorageError, ValidationError
from .planning import GroupPlanner, TargetPlan, collect_jobs
from .results import ConcatReport, GroupResult, TargetResult, TargetStatus
from .s3 import Boto3Storage, KeyMapper, PatternMatcher, SourceEnumerator, StorageClient, parse_bucket_prefix
from .upload import UploadOrchestrator
from .utils import ProgressTracker, RetryPolicy

LOGGER = logging.getLogger(__name__)


class RemoteConcatenator:
    """Coordinates listing, planning and multipart assembly for a run."""

    def __init__(
        self,
        storage: StorageClient,
        settings: Optional[ConcatSettings] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or ConcatSettings()
        self.cancel_event = cancel_event or threading.Event()
        self.progress = progress or ProgressTracker(enabled=False)
        self.retry_policy = RetryPolicy(
            retry_count=self.settings.retry_count,
            retry_delay=self.settings.retry_delay,
            retry_backoff=self.settings.retry_backoff,
        )
        self.enumerator = SourceEnumerator(storage, self.retry_policy)

    @classmethod
    def from_config(cls, config: ConfigManager, show_progress: bool = True) -> "RemoteConcatenator":
        """Build a concatenator backed by a boto3 S3 client."""
        session = cls._create_session(config.get_aws_config())
        client_kwargs = {}
        endpoint_url = config.get_endpoint_url()
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        s3_client = session.client("s3", **client_kwargs)
        return cls(
            Boto3Storage(s3_client),
            config.get_concat_settings(),
            progress=ProgressTracker(enabled=show_progress),
        )

    def run(
        self,
        bucket_prefix: str,
        source_pattern: str,
        target_pattern: str,
        *,
        cleanup: bool = False,
        dry_run: bool = False,
    ) -> ConcatReport:
        """Concatenate every matched object into its target key.

        Pattern problems raise ConfigurationError before any storage call and
        listing failures raise StorageError; every other failure is recorded
        against its target key in the returned report.
        """
        bucket, prefix = parse_bucket_prefix(bucket_prefix)
        matcher = PatternMatcher(source_pattern, syntax=self.settings.pattern_syntax)
        mapper = KeyMapper(target_pattern, matcher)
        planner = GroupPlanner(overflow=self.settings.overflow)

        report = ConcatReport(
            bucket=bucket,
            prefix=prefix,
            source_pattern=source_pattern,
            target_pattern=target_pattern,
            dry_run=dry_run,
            cleanup=cleanup,
        )
        start_time = time.time()

        LOGGER.info("Scanning s3://%s/%s for '%s'", bucket, prefix, source_pattern)
        jobs = collect_jobs(self.enumerator.iter_objects(bucket, prefix), matcher, mapper)
        LOGGER.info("Found %s target key(s)", len(jobs))

        results: Dict[str, TargetResult] = {}
        plans: List[TargetPlan] = []
        for job in jobs:
            try:
                plans.append(planner.plan(job))
            except ValidationError as exc:
                LOGGER.error("Skipping %s: %s", job.target_key, exc)
                results[job.target_key] = TargetResult(
                    target_key=job.target_key,
                    status=TargetStatus.VALIDATION_FAILED,
                    reason=str(exc),
                )

        if dry_run:
            for plan in plans:
                results[plan.target_key] = self._planned_result(plan, TargetStatus.PLANNED)
            LOGGER.info("Dry run completed. Target keys planned: %s", len(plans))
        else:
            results.update(self._execute(bucket, plans, cleanup))

        report.targets = [results[target_key] for target_key in sorted(results)]
        report.duration_seconds = time.time() - start_time
        LOGGER.info("Run finished: %s", report.get_status_counts())
        return report

    def _execute(self, bucket: str, plans: List[TargetPlan], cleanup: bool) -> Dict[str, TargetResult]:
        results: Dict[str, TargetResult] = {}
        if not plans:
            return results

        total_parts = sum(len(group.objects) for plan in plans for group in plan.groups)
        self.progress.start(total_parts)
        future_map: Dict[Future, TargetPlan] = {}
        try:
            with ThreadPoolExecutor(max_workers=self.settings.target_concurrency) as executor:
                try:
                    for plan in plans:
                        future_map[executor.submit(self._process_target, bucket, plan, cleanup)] = plan
                    for future in as_completed(future_map):
                        plan = future_map[future]
                        results[plan.target_key] = self._collect(future, plan)
                except KeyboardInterrupt:
                    LOGGER.error("Interrupted: aborting open uploads and skipping remaining targets")
                    self.cancel_event.set()
                    for pending in future_map:
                        pending.cancel()

            futures_by_key = {plan.target_key: future for future, plan in future_map.items()}
            for plan in plans:
                if plan.target_key in results:
                    continue
                future = futures_by_key.get(plan.target_key)
                if future is not None and future.done() and not future.cancelled():
                    results[plan.target_key] = self._collect(future, plan)
                else:
                    result = self._planned_result(plan, TargetStatus.CANCELLED)
                    result.reason = "Cancelled before the upload started"
                    results[plan.target_key] = result
        finally:
            self.progress.finish()
        return results

    def _collect(self, future: Future, plan: TargetPlan) -> TargetResult:
        """Return a finished target's result; an unexpected error fails only that target."""
        try:
            return future.result()
        except Exception as exc:
            LOGGER.exception("Unexpected failure while processing %s", plan.target_key)
            result = self._planned_result(plan, TargetStatus.ABORTED)
            result.reason = str(exc)
            return result

    def _process_target(self, bucket: str, plan: TargetPlan, cleanup: bool) -> TargetResult:
        result = self._planned_result(plan, TargetStatus.COMMITTED)
        if self.cancel_event.is_set():
            result.status = TargetStatus.CANCELLED
            result.reason = "Cancelled before the upload started"
            return result

        orchestrator = UploadOrchestrator(
            self.storage,
            bucket,
            retry_policy=self.retry_policy,
            part_concurrency=self.settings.part_concurrency,
            cancel_event=self.cancel_event,
            progress=self.progress,
        )
        for group, group_result in zip(plan.groups, result.groups):
            outcome = orchestrator.run(group)
            group_result.upload_id = outcome.upload_id
            group_result.committed = outcome.committed
            if outcome.abort_error:
                result.abort_failures.append(outcome.abort_error)
            if not outcome.committed:
                result.status = TargetStatus.CANCELLED if outcome.cancelled else TargetStatus.ABORTED
                result.reason = outcome.error
                return result

        if cleanup:
            self._cleanup(bucket, result)
        return result

    def _cleanup(self, bucket: str, result: TargetResult) -> None:
        """Delete the sources of a committed target; failures are recorded, never rolled back."""
        for key in result.source_keys:
            LOGGER.info("Removing %s...", key)
            try:
                self.retry_policy.call(lambda: self.storage.delete(bucket, key), f"deleting {key}")
            except StorageError as exc:
                LOGGER.error("Unable to remove %s: %s", key, exc)
                result.delete_failures.append((key, str(exc)))
                continue
            result.deleted_keys.append(key)

    @staticmethod
    def _planned_result(plan: TargetPlan, status: TargetStatus) -> TargetResult:
        result = TargetResult(
            target_key=plan.target_key,
            status=status,
            groups=[GroupResult.from_group(group) for group in plan.groups],
            unplaceable_keys=[matched.key for matched in plan.unplaceable],
        )
        if result.unplaceable_keys:
            result.reason = (
                f"{len(result.unplaceable_keys)} object(s) past the multipart part limit were not placed"
            )
        return result

    @staticmethod
    def _create_session(aws_config: Dict[str, str]) -> boto3.session.Session:
        try:
            return boto3.session.Session(**aws_config)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - depends on AWS
            raise ConfigurationError(f"Unable to create AWS session: {exc}") from exc


def concatenate(
    storage: StorageClient,
    bucket_prefix: str,
    source_pattern: str,
    target_pattern: str,
    *,
    cleanup: bool = False,
    dry_run: bool = False,
    settings: Optional[ConcatSettings] = None,
) -> ConcatReport:
    """Run a single concatenation against the given storage client."""
    concatenator = RemoteConcatenator(storage, settings)
    return concatenator.run(
        bucket_prefix, source_pattern, target_pattern, cleanup=cleanup, dry_run=dry_run
    )
