"""Multipart upload orchestration."""

from .orchestrator import GroupOutcome, UploadOrchestrator
from .session import SessionState, UploadSession

__all__ = ["GroupOutcome", "UploadOrchestrator", "SessionState", "UploadSession"]
