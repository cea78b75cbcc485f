"""
Storage specific machine-readable error codes.

Codes are plain strings on the wire so clients can match on them without
importing this module.
"""
from __future__ import annotations

from enum import Enum


class StorageErrorCode(str, Enum):
    # Generic
    STORAGE_ERROR = "STORAGE_ERROR"
    NOT_FOUND = "STORAGE_NOT_FOUND"
    PERMISSION_DENIED = "STORAGE_PERMISSION_DENIED"
    TRANSIENT = "STORAGE_TRANSIENT"
    VALIDATION_FAILED = "STORAGE_VALIDATION_FAILED"
    PROVIDER_UNKNOWN = "STORAGE_PROVIDER_UNKNOWN"

    # Local filesystem
    LOCAL_BASE_PATH_MISSING = "LOCAL_BASE_PATH_MISSING"
    LOCAL_UPLOAD_FAILED = "LOCAL_UPLOAD_FAILED"
    LOCAL_DOWNLOAD_FAILED = "LOCAL_DOWNLOAD_FAILED"
    LOCAL_LIST_FAILED = "LOCAL_LIST_FAILED"
    LOCAL_MOVE_FAILED = "LOCAL_MOVE_FAILED"

    # GitHub repository host
    GITHUB_TOKEN_MISSING = "GITHUB_TOKEN_MISSING"
    GITHUB_REPO_INVALID = "GITHUB_REPO_INVALID"
    GITHUB_PAGES_URL_MISSING = "GITHUB_PAGES_URL_MISSING"
    GITHUB_UPLOAD_FAILED = "GITHUB_UPLOAD_FAILED"
    GITHUB_DOWNLOAD_FAILED = "GITHUB_DOWNLOAD_FAILED"
    GITHUB_LIST_FAILED = "GITHUB_LIST_FAILED"
    GITHUB_MOVE_FAILED = "GITHUB_MOVE_FAILED"
    GITHUB_PATH_CONFLICT = "GITHUB_PATH_CONFLICT"

    # Cloudflare R2 (S3 compatible)
    R2_ACCESS_KEY_MISSING = "R2_ACCESS_KEY_MISSING"
    R2_SECRET_KEY_MISSING = "R2_SECRET_KEY_MISSING"
    R2_BUCKET_MISSING = "R2_BUCKET_MISSING"
    R2_ENDPOINT_MISSING = "R2_ENDPOINT_MISSING"
    R2_PUBLIC_URL_MISSING = "R2_PUBLIC_URL_MISSING"
    R2_UPLOAD_FAILED = "R2_UPLOAD_FAILED"
    R2_DOWNLOAD_FAILED = "R2_DOWNLOAD_FAILED"
    R2_LIST_FAILED = "R2_LIST_FAILED"
    R2_MOVE_FAILED = "R2_MOVE_FAILED"


__all__ = ["StorageErrorCode"]
