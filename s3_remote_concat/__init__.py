"""Concatenate S3 objects remotely with multipart copies."""

from .main import RemoteConcatenator, concatenate
from .results import ConcatReport, TargetResult, TargetStatus

__all__ = ["RemoteConcatenator", "concatenate", "ConcatReport", "TargetResult", "TargetStatus"]
