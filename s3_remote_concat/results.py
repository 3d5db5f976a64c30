"""Per-target results and the overall run report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .planning.models import Group


class TargetStatus(str, Enum):
    PLANNED = "planned"
    COMMITTED = "committed"
    ABORTED = "aborted"
    VALIDATION_FAILED = "validation_failed"
    CANCELLED = "cancelled"


FAILED_STATUSES = {TargetStatus.ABORTED, TargetStatus.VALIDATION_FAILED, TargetStatus.CANCELLED}


@dataclass
class GroupResult:
    """One multipart assembly as planned and, in live runs, as executed."""

    target_key: str
    source_keys: List[str]
    total_size: int
    upload_id: Optional[str] = None
    committed: bool = False

    @classmethod
    def from_group(cls, group: Group) -> "GroupResult":
        return cls(target_key=group.target_key, source_keys=group.keys, total_size=group.total_size)

    def get_size_mb(self) -> float:
        return self.total_size / (1024 * 1024)


@dataclass
class TargetResult:
    """Terminal status of one target key."""

    target_key: str
    status: TargetStatus
    reason: Optional[str] = None
    groups: List[GroupResult] = field(default_factory=list)
    unplaceable_keys: List[str] = field(default_factory=list)
    deleted_keys: List[str] = field(default_factory=list)
    delete_failures: List[Tuple[str, str]] = field(default_factory=list)
    abort_failures: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status in FAILED_STATUSES or bool(self.unplaceable_keys)

    @property
    def total_size(self) -> int:
        return sum(group.total_size for group in self.groups)

    @property
    def source_keys(self) -> List[str]:
        return [key for group in self.groups for key in group.source_keys]


@dataclass
class ConcatReport:
    """Everything a run planned or did, target by target."""

    bucket: str
    prefix: str
    source_pattern: str
    target_pattern: str
    dry_run: bool
    cleanup: bool
    targets: List[TargetResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def has_failures(self) -> bool:
        return any(target.failed for target in self.targets)

    @property
    def exit_code(self) -> int:
        return 1 if self.has_failures else 0

    def get_target(self, target_key: str) -> Optional[TargetResult]:
        for target in self.targets:
            if target.target_key == target_key:
                return target
        return None

    def get_status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TargetStatus}
        for target in self.targets:
            counts[target.status.value] += 1
        return counts
