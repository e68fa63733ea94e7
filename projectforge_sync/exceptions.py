"""
Custom exceptions for project storage and sync.

Local and remote stores raise these exceptions so the sync
coordinator can tell hard failures from recoverable ones.
"""

from __future__ import annotations

from enum import Enum


class ProjectStorageError(Exception):
    """Base exception for all project storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProjectNotFoundError(ProjectStorageError):
    """Raised when a project is not found."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}", {"project_id": project_id})
        self.project_id = project_id


class ProjectValidationError(ProjectStorageError):
    """Raised when caller-supplied project data is malformed."""

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class StorageIOError(ProjectStorageError):
    """Raised when a local storage I/O or serialization operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        if cause:
            message += f" ({cause})"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class RemoteErrorKind(Enum):
    """Classification of remote store failures.

    NETWORK: transient (timeouts, throttling, 5xx), caller may retry
    SCHEMA_REJECTED: the remote refused the write, retrying the same data won't help
    UNKNOWN: opaque failure
    """

    NETWORK = "network"
    SCHEMA_REJECTED = "schema_rejected"
    UNKNOWN = "unknown"


class RemoteSyncError(ProjectStorageError):
    """Raised by the remote client when a remote operation fails."""

    def __init__(
        self,
        kind: RemoteErrorKind,
        operation: str,
        reason: str,
        project_id: str | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {"kind": kind.value, "operation": operation, "reason": reason}
        if project_id:
            details["project_id"] = project_id
        super().__init__(reason, details)
        self.kind = kind
        self.operation = operation
        self.reason = reason
        self.project_id = project_id
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.kind == RemoteErrorKind.NETWORK


class AuthenticationError(ProjectStorageError):
    """Raised when credentials for the remote store cannot be created."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        message = f"Authentication failed for {endpoint}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.endpoint = endpoint
        self.reason = reason
