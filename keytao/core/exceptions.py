"""
Custom exceptions for the KeyTao dictionary platform.

Every domain failure carries a stable error code, an HTTP status and a
``details`` payload so the API layer can render it without knowing the
service that raised it.
"""

from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Input errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CODE = "INVALID_CODE"
    IMPORT_LIMIT_EXCEEDED = "IMPORT_LIMIT_EXCEEDED"

    # Access errors
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"

    # Workflow errors
    INVALID_STATE = "INVALID_STATE"
    UNRESOLVED_CONFLICT = "UNRESOLVED_CONFLICT"
    BATCH_APPLY_FAILED = "BATCH_APPLY_FAILED"
    DUPLICATE_PHRASE = "DUPLICATE_PHRASE"

    # Sync errors
    NOTHING_TO_SYNC = "NOTHING_TO_SYNC"
    SYNC_TASK_ACTIVE = "SYNC_TASK_ACTIVE"
    GITHUB_API_ERROR = "GITHUB_API_ERROR"
    GITHUB_NOT_CONFIGURED = "GITHUB_NOT_CONFIGURED"

    # Generic errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class KeyTaoException(Exception):
    """Base exception for the dictionary platform."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code


class ValidationError(KeyTaoException):
    """Raised when caller input is malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            status_code=400
        )


class InvalidCodeError(KeyTaoException):
    """Raised when a phrase code fails the pattern or length check."""

    def __init__(self, code: str, reason: str):
        super().__init__(
            message=f"Invalid code '{code}': {reason}",
            error_code=ErrorCode.INVALID_CODE,
            details={"code": code, "reason": reason},
            status_code=400
        )


class ImportLimitExceededError(KeyTaoException):
    """Raised when one import request carries too many lines."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            message=f"Import of {size} lines exceeds the limit of {limit} per request",
            error_code=ErrorCode.IMPORT_LIMIT_EXCEEDED,
            details={"size": size, "limit": limit},
            status_code=400
        )


class AuthenticationError(KeyTaoException):
    """Raised when credentials are missing or invalid."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTHENTICATION_REQUIRED,
            status_code=401
        )


class PermissionDeniedError(KeyTaoException):
    """Raised when the caller may not perform an operation."""

    def __init__(self, message: str = "Permission denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PERMISSION_DENIED,
            details=details,
            status_code=403
        )


class NotFoundError(KeyTaoException):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            message=f"{entity} {identifier} not found",
            error_code=ErrorCode.NOT_FOUND,
            details={"entity": entity, "id": identifier},
            status_code=404
        )


class InvalidStateError(KeyTaoException):
    """Raised when a state-machine transition is not allowed."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        details = {"current_status": current_status} if current_status else None
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_STATE,
            details=details,
            status_code=409
        )


class UnresolvedConflictError(KeyTaoException):
    """
    Raised when a batch still contains conflicts without a resolving edit.
    ``conflicts`` is the list of per-edit verdicts that block the transition.
    """

    def __init__(self, conflicts: List[Dict[str, Any]], message: str = "Batch has unresolved conflicts"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNRESOLVED_CONFLICT,
            details={"conflicts": conflicts},
            status_code=409
        )
        self.conflicts = conflicts


class BatchApplyError(KeyTaoException):
    """Raised when applying an approved batch to the phrase store fails."""

    def __init__(self, batch_id: int, reason: str, edit_id: Optional[int] = None):
        details: Dict[str, Any] = {"batch_id": batch_id, "reason": reason}
        if edit_id is not None:
            details["edit_id"] = edit_id
        super().__init__(
            message=f"Failed to apply batch {batch_id}: {reason}",
            error_code=ErrorCode.BATCH_APPLY_FAILED,
            details=details,
            status_code=500
        )


class DuplicatePhraseError(KeyTaoException):
    """Raised when a (word, code) combination already exists."""

    def __init__(self, word: str, code: str):
        super().__init__(
            message=f"Phrase '{word}' already exists at code '{code}'",
            error_code=ErrorCode.DUPLICATE_PHRASE,
            details={"word": word, "code": code},
            status_code=409
        )


class NothingToSyncError(KeyTaoException):
    """Raised when a sync is triggered without approved, unsynced batches."""

    def __init__(self):
        super().__init__(
            message="No batches to sync",
            error_code=ErrorCode.NOTHING_TO_SYNC,
            status_code=400
        )


class SyncTaskActiveError(KeyTaoException):
    """Raised when a sync is triggered while another one is still active."""

    def __init__(self, task_id: int):
        super().__init__(
            message=f"Sync task {task_id} is still active",
            error_code=ErrorCode.SYNC_TASK_ACTIVE,
            details={"task_id": task_id},
            status_code=409
        )


class GithubNotConfiguredError(KeyTaoException):
    """Raised when neither a token nor GitHub App credentials are configured."""

    def __init__(self):
        super().__init__(
            message=(
                "GitHub authentication required. Set either GITHUB_APP_ID, "
                "GITHUB_APP_PRIVATE_KEY and GITHUB_APP_INSTALLATION_ID, or GITHUB_TOKEN"
            ),
            error_code=ErrorCode.GITHUB_NOT_CONFIGURED,
            status_code=503
        )


class GithubApiError(KeyTaoException):
    """Raised when the GitHub REST API answers with an error."""

    def __init__(self, operation: str, status: Optional[int], message: str):
        super().__init__(
            message=f"GitHub {operation} failed ({status}): {message}",
            error_code=ErrorCode.GITHUB_API_ERROR,
            details={"operation": operation, "status": status},
            status_code=502
        )
        self.status = status
