"""Exceptions raised by the backup and restore engine."""

import typing


class BackupToolError(Exception):
    """Base exception for all homelab-backup errors."""

    def __init__(self, message: str, details: typing.Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(BackupToolError):
    """Raised when an app's config document cannot be read or validated."""


class PreconditionError(BackupToolError):
    """Raised before any mutation when a job cannot start at all."""


class LifecycleError(BackupToolError):
    """Raised when an app's containers cannot be brought back up."""


class CaptureError(BackupToolError):
    """Raised when the data archive cannot be produced."""


class RepositoryError(BackupToolError):
    """Raised when a restic invocation fails or times out."""


class SyncError(BackupToolError):
    """Raised when a capture cannot be pushed to the remote repository."""


class RestoreError(BackupToolError):
    """Raised when a snapshot cannot be fetched or extracted."""


class ContainerRuntimeError(BackupToolError):
    """Raised when a docker compose or docker exec call fails."""
