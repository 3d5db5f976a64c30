"""Custom exception definitions for the remote concatenation tool."""

from typing import Optional


class RemoteConcatError(Exception):
    """Base exception for the package."""


class ConfigurationError(RemoteConcatError):
    """Raised when configuration, patterns or arguments are invalid."""


class ValidationError(RemoteConcatError):
    """Raised when a target's source objects cannot be assembled as parts."""

    def __init__(self, message: str, key: Optional[str] = None, size: Optional[int] = None):
        super().__init__(message)
        self.key = key
        self.size = size


class StorageError(RemoteConcatError):
    """Raised when a storage service call fails."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class TransientIOError(StorageError):
    """Raised for throttling, timeouts and connection failures that may succeed on retry."""


class StoragePermissionError(StorageError):
    """Raised when the credentials are not allowed to perform an operation."""


class OrchestrationFailure(RemoteConcatError):
    """Raised when a multipart session could not be committed."""


class OperationCancelled(RemoteConcatError):
    """Raised when a user-requested cancellation interrupts a session."""


class SessionStateError(RemoteConcatError):
    """Raised on an illegal multipart session state transition."""
