"""
MediaMirror exception hierarchy.

All domain-specific exceptions inherit from MediaMirrorError, making it easy
to catch any pipeline error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    MediaMirrorError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── TransientError            - retryable I/O failures
    │   ├── OriginError           - origin store listing / download / link
    │   ├── StorageError          - object storage upload
    │   ├── QueueError            - work queue send / receive
    │   └── EncoderSubmissionError - external encoder rejected or unreachable
    ├── UnsupportedPayloadError   - origin returned no usable content
    ├── InvalidJobError           - malformed queue message
    ├── CursorConflictError       - conditional cursor write lost a race
    └── RetryError                - retry loop misuse or exhaustion
"""

from __future__ import annotations


class MediaMirrorError(Exception):
    """Base exception for all MediaMirror errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(MediaMirrorError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Transient I/O -----------------------------------------------------------


class TransientError(MediaMirrorError):
    """Base for I/O failures that may succeed on redelivery."""


class OriginError(TransientError):
    """Raised when an origin store call fails."""

    def __init__(self, message: str, *, status: int | None = None, endpoint: str | None = None) -> None:
        super().__init__(message, details={"status": status, "endpoint": endpoint})
        self.status = status
        self.endpoint = endpoint


class StorageError(TransientError):
    """Raised when an object storage write fails."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message, details={"key": key})
        self.key = key


class QueueError(TransientError):
    """Raised when a work queue operation fails."""


class EncoderSubmissionError(TransientError):
    """Raised when the external encoder does not accept a job."""


# --- Payload / message -------------------------------------------------------


class UnsupportedPayloadError(MediaMirrorError):
    """Raised when an origin download carries no recognised content."""

    def __init__(self, remote_id: str, reason: str) -> None:
        super().__init__(f"Unsupported payload for {remote_id}: {reason}", details={"remote_id": remote_id})
        self.remote_id = remote_id
        self.reason = reason


class InvalidJobError(MediaMirrorError):
    """Raised when a queue message cannot be turned into a Job."""


# --- Cursor ------------------------------------------------------------------


class CursorConflictError(MediaMirrorError):
    """Raised when another writer updated the cursor since it was read."""

    def __init__(self, key: str, expected_version: str | None) -> None:
        super().__init__(
            f"Cursor '{key}' changed since version {expected_version!r}",
            details={"key": key, "expected_version": expected_version},
        )
        self.key = key
        self.expected_version = expected_version


# --- Retry -------------------------------------------------------------------


class RetryError(MediaMirrorError):
    """Raised when all retry attempts are exhausted."""
