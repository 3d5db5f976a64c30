"""Partitioning of concatenation jobs into valid multipart groups."""

from __future__ import annotations

import logging
import posixpath
from typing import Dict, Iterable, List

from ..exceptions import ConfigurationError, ValidationError
from ..s3.file_matcher import KeyMapper, MatchedObject, PatternMatcher
from ..s3.storage import ObjectRef
from .models import Group, Job, TargetPlan

LOGGER = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10_000
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024


def numbered_target_key(target_key: str, number: int) -> str:
    """Insert ``.part<number>`` before the final extension of a target key."""
    directory, basename = posixpath.split(target_key)
    stem, dot, extension = basename.rpartition(".")
    if not dot or not stem:
        numbered = f"{basename}.part{number}"
    else:
        numbered = f"{stem}.part{number}.{extension}"
    return posixpath.join(directory, numbered) if directory else numbered


def collect_jobs(
    objects: Iterable[ObjectRef], matcher: PatternMatcher, mapper: KeyMapper
) -> List[Job]:
    """Match and map a stream of objects into jobs, ordered by target key.

    Objects are consumed as they arrive; only matching objects are retained.
    """
    jobs: Dict[str, Job] = {}
    for ref in objects:
        matched = matcher.match_object(ref)
        if matched is None:
            continue
        target_key = mapper.render(matched)
        if target_key == ref.key:
            LOGGER.debug("Skipping %s: it maps onto itself", ref.key)
            continue
        LOGGER.info("Concatenating %s -> %s", ref.key, target_key)
        jobs.setdefault(target_key, Job(target_key=target_key)).add(matched)
    return [jobs[target_key] for target_key in sorted(jobs)]


class GroupPlanner:
    """Splits a job into groups that satisfy the multipart part-count and part-size limits."""

    def __init__(
        self,
        overflow: str = "report",
        max_parts: int = MAX_PARTS,
        min_part_size: int = MIN_PART_SIZE,
        max_part_size: int = MAX_PART_SIZE,
    ) -> None:
        if overflow not in ("report", "split"):
            raise ConfigurationError(f"Unknown overflow policy '{overflow}'.")
        if max_parts < 1:
            raise ConfigurationError("max_parts must be at least 1.")
        self.overflow = overflow
        self.max_parts = max_parts
        self.min_part_size = min_part_size
        self.max_part_size = max_part_size

    def plan(self, job: Job) -> TargetPlan:
        """Return the groups to commit for a job.

        Raises ValidationError, before any storage call, when a segment
        other than the very last one is below the minimum part size, or
        when any segment exceeds the maximum copyable part size.
        """
        ordered = job.ordered()
        self.validate(job.target_key, ordered)

        chunks = self.partition(ordered)
        groups = [
            Group.from_objects(
                job.target_key if index == 1 else numbered_target_key(job.target_key, index),
                chunk,
            )
            for index, chunk in enumerate(chunks, start=1)
        ]

        if len(groups) > 1 and self.overflow == "report":
            unplaceable = [matched for group in groups[1:] for matched in group.objects]
            LOGGER.warning(
                "Target %s needs %s groups of at most %s parts; %s object(s) cannot be placed",
                job.target_key,
                len(groups),
                self.max_parts,
                len(unplaceable),
            )
            return TargetPlan(target_key=job.target_key, groups=groups[:1], unplaceable=unplaceable)

        return TargetPlan(target_key=job.target_key, groups=groups)

    def partition(self, ordered: List[MatchedObject]) -> List[List[MatchedObject]]:
        """Cut the ordered objects into consecutive runs of at most max_parts."""
        return [ordered[start:start + self.max_parts] for start in range(0, len(ordered), self.max_parts)]

    def validate(self, target_key: str, ordered: List[MatchedObject]) -> None:
        offenders = []
        last_index = len(ordered) - 1
        for index, matched in enumerate(ordered):
            if matched.size > self.max_part_size:
                offenders.append((matched, f"above the {self.max_part_size} byte maximum part size"))
            elif index != last_index and matched.size < self.min_part_size:
                offenders.append((matched, f"below the {self.min_part_size} byte minimum part size"))

        if not offenders:
            return

        details = "; ".join(f"{matched.key} ({matched.size} bytes, {reason})" for matched, reason in offenders)
        first = offenders[0][0]
        raise ValidationError(
            f"Cannot concatenate into {target_key}: {details}",
            key=first.key,
            size=first.size,
        )
