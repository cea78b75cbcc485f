"""
Shared business codes used across layers (Core/API/Infrastructure).

This package exposes BusinessCode at `shared.codes` and keeps
storage-specific error codes under `shared.codes.storage_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    PATH_CONFLICT = 20007

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Storage errors (6xxxx)
    STORAGE_ERROR = 60000
    STORAGE_CONFIG_ERROR = 60001


__all__ = ["BusinessCode"]
