# src/arch_bulletin/core/errors.py

"""
Error taxonomy shared by the storage layer and the post lifecycle.

Two families:
- storage errors are mechanical (what the backend said) and are raised by adapters;
  the document repository decides whether to retry or surface them,
- domain errors are raised by the lifecycle engine before any write and are never retried.

Every error carries a stable `code` and a human-readable `message`. Backend specifics
go into `detail`, which is meant for logs only.
"""

from __future__ import annotations

from typing import Any


class BulletinError(Exception):
    code = "INTERNAL_ERROR"
    status = 500
    default_message = "Internal error."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


# ---- storage ----


class StorageError(BulletinError):
    code = "STORAGE_ERROR"
    status = 502
    default_message = "Storage backend rejected the request."


class NotFoundError(StorageError):
    code = "NOT_FOUND"
    status = 404
    default_message = "Document not found."


class ConflictError(StorageError):
    code = "STALE_DATA"
    status = 409
    default_message = "The document was changed by someone else. Reload and try again."


class UnavailableError(StorageError):
    code = "UNAVAILABLE"
    status = 503
    default_message = "Storage is temporarily unavailable. Please try again."


class CorruptDataError(StorageError):
    code = "CORRUPT_DATA"
    status = 500
    default_message = "Stored document is unreadable."


class UnsupportedOperationError(StorageError):
    code = "UNSUPPORTED"
    status = 501
    default_message = "The configured storage backend does not support this operation."


# ---- domain ----


class DomainError(BulletinError):
    pass


class InvariantViolation(DomainError):
    code = "INVARIANT_VIOLATION"
    status = 422
    default_message = "The operation would break a board rule."


class CapacityExceededError(InvariantViolation):
    code = "TASK_LIMIT_REACHED"
    default_message = "The board has reached its active task limit. Archive completed tasks to free up space."


class AlreadyAssignedError(InvariantViolation):
    code = "ALREADY_ASSIGNED"
    status = 409
    default_message = "Architect is already assigned to this post."


class NotAssignedError(InvariantViolation):
    code = "NOT_ASSIGNED"
    default_message = "Architect is not assigned to this post."


class InvalidTransitionError(InvariantViolation):
    code = "INVALID_TRANSITION"
    default_message = "The post cannot move to the requested state."


class ValidationError(InvariantViolation):
    code = "VALIDATION_ERROR"
    status = 400
    default_message = "Please check your input and try again."


class ForbiddenError(DomainError):
    code = "FORBIDDEN"
    status = 403
    default_message = "You do not have permission to perform this action."
