"""Storage service exceptions."""
from typing import Optional

from shared.codes.storage_codes import StorageErrorCode


class StorageError(Exception):
    """Base storage exception.

    Carries a machine-readable ``code`` and, when the failure came from a
    backend SDK or HTTP call, the ``original_error`` that caused it.
    """

    default_code: StorageErrorCode = StorageErrorCode.STORAGE_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.code = str(code.value if isinstance(code, StorageErrorCode) else code or self.default_code.value)
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class NotFoundError(StorageError):
    """File not found in storage."""
    default_code = StorageErrorCode.NOT_FOUND


class PermissionDeniedError(StorageError):
    """Permission denied for storage operation."""
    default_code = StorageErrorCode.PERMISSION_DENIED


class TransientError(StorageError):
    """Transient error (network, rate limit, server error)."""
    default_code = StorageErrorCode.TRANSIENT


class ConfigurationError(StorageError):
    """Storage configuration error, raised before any network I/O."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message, code or StorageErrorCode.STORAGE_ERROR)
        self.field = field


class ValidationError(StorageError):
    """Storage validation error."""
    default_code = StorageErrorCode.VALIDATION_FAILED


class PathConflictError(StorageError):
    """A key's ancestor exists as a file where a directory is required."""
    default_code = StorageErrorCode.GITHUB_PATH_CONFLICT

    def __init__(
        self,
        conflict_path: str,
        key: str,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"The path '{conflict_path}' exists as a file in the repository, "
            f"preventing directory creation for '{key}'. "
            f"Rename or delete this file in the repository.",
            original_error=original_error,
        )
        self.conflict_path = conflict_path
        self.key = key
