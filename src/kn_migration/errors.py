"""
Error taxonomy shared by the resource client and the migration engine.

The client turns every Kubernetes API failure into one of the
``ClientError`` subclasses below so the engine can decide what to retry
without looking at HTTP status codes.
"""

from __future__ import annotations

__all__ = [
    "MigrationError",
    "ClientError",
    "NotFoundError",
    "ConflictError",
    "AlreadyExistsError",
    "PendingDeletionError",
    "ServiceMigrationError",
]


class MigrationError(Exception):
    """Base class for all migration failures."""


class ClientError(MigrationError):
    """An API call failed for a reason the engine does not retry."""

    def __init__(self, message: str, status: int | None = None, reason: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class NotFoundError(ClientError):
    """The resource is absent (or not yet visible on the control plane)."""


class ConflictError(ClientError):
    """A concurrent update changed the resource version first."""


class AlreadyExistsError(ClientError):
    """A resource with the same name already exists in the target namespace."""


class PendingDeletionError(MigrationError):
    """A deleted resource is still reported by the destination cluster."""


class ServiceMigrationError(MigrationError):
    """Migration of one service stopped at *step*."""

    def __init__(self, service: str, step: str, cause: BaseException) -> None:
        super().__init__(
            f"migration of service '{service}' failed at step '{step}': {cause}"
        )
        self.service = service
        self.step = step
        self.cause = cause
