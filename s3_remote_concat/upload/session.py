"""Multipart session bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List

from ..exceptions import SessionStateError
from ..s3.storage import PartResult


class SessionState(str, Enum):
    OPEN = "open"
    PARTS_UPLOADING = "parts_uploading"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ABORTED = "aborted"


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.OPEN: frozenset({SessionState.PARTS_UPLOADING, SessionState.ABORTED}),
    SessionState.PARTS_UPLOADING: frozenset({SessionState.COMMITTING, SessionState.ABORTED}),
    SessionState.COMMITTING: frozenset({SessionState.COMMITTED, SessionState.ABORTED}),
    SessionState.COMMITTED: frozenset(),
    SessionState.ABORTED: frozenset(),
}


@dataclass
class UploadSession:
    """A server-side multipart upload owned by a single orchestration run."""

    bucket: str
    target_key: str
    upload_id: str
    parts: List[PartResult] = field(default_factory=list)
    state: SessionState = SessionState.OPEN

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Upload {self.upload_id} cannot move from {self.state.value} to {new_state.value}."
            )
        self.state = new_state

    def record_parts(self, parts: List[PartResult]) -> None:
        """Store the copied parts in part-number order."""
        self.parts = sorted(parts, key=lambda part: part.part_number)
