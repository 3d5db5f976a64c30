"""Utility helpers for the remote concatenation tool."""

from .logger import configure_logging
from .progress import ProgressTracker
from .retry import RetryPolicy

__all__ = ["configure_logging", "ProgressTracker", "RetryPolicy"]
