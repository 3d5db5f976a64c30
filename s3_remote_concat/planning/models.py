"""Concatenation jobs and the multipart groups carved out of them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from ..s3.file_matcher import MatchedObject


@dataclass
class Job:
    """All matched objects that render to the same target key."""

    target_key: str
    objects: List[MatchedObject] = field(default_factory=list)

    def add(self, matched: MatchedObject) -> None:
        self.objects.append(matched)

    def ordered(self) -> List[MatchedObject]:
        """Return the objects in concatenation order: ascending storage key."""
        return sorted(self.objects, key=lambda matched: matched.key)

    @property
    def total_size(self) -> int:
        return sum(matched.size for matched in self.objects)


@dataclass(frozen=True)
class Group:
    """One multipart assembly: an ordered run of a job's objects."""

    target_key: str
    objects: Tuple[MatchedObject, ...]
    total_size: int

    @classmethod
    def from_objects(cls, target_key: str, objects: List[MatchedObject]) -> "Group":
        return cls(
            target_key=target_key,
            objects=tuple(objects),
            total_size=sum(matched.size for matched in objects),
        )

    @property
    def keys(self) -> List[str]:
        return [matched.key for matched in self.objects]


@dataclass
class TargetPlan:
    """The groups to commit for one target key, plus anything left unplaced."""

    target_key: str
    groups: List[Group]
    unplaceable: List[MatchedObject] = field(default_factory=list)
