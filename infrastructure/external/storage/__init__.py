"""Storage service entry point and lifecycle management."""
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.logging_config import get_logger
from shared.codes.storage_codes import StorageErrorCode
from .base import StorageProvider
from .config import (
    GithubAccessMethod,
    GithubStorageConfig,
    LocalStorageConfig,
    R2StorageConfig,
    StorageConfig,
    StorageType,
    parse_storage_config,
)
from .exceptions import (
    ConfigurationError,
    NotFoundError,
    PathConflictError,
    PermissionDeniedError,
    StorageError,
    TransientError,
    ValidationError,
)
from .factory import create_provider, register_provider
from .models import (
    DeleteResult,
    ListOptions,
    ListResult,
    MoveResult,
    StorageFile,
    UploadFileInput,
    UploadResult,
)
from .utils import (
    LoggingMiddleware,
    StorageMiddleware,
    ValidationMiddleware,
    apply_middleware,
    build_key,
    calculate_content_hash,
    generate_filename,
    guess_content_type,
    relocate_key,
    thumbnail_key_for,
)

logger = get_logger(__name__)

# Global storage client instance (default provider)
_storage_client: Optional[StorageProvider] = None

# Settings-table key -> StorageConfig field, per provider
_MAPPING_FIELDS: dict[str, dict[str, str]] = {
    StorageType.LOCAL.value: {
        "local_base_path": "base_path",
        "local_base_url": "base_url",
    },
    StorageType.GITHUB.value: {
        "github_token": "token",
        "github_repo": "repo",
        "github_path": "path",
        "github_branch": "branch",
        "github_access_method": "access_method",
        "github_pages_url": "pages_url",
        "github_api_url": "api_url",
    },
    StorageType.R2.value: {
        "r2_access_key_id": "access_key_id",
        "r2_secret_access_key": "secret_access_key",
        "r2_bucket": "bucket",
        "r2_endpoint": "endpoint",
        "r2_public_url": "public_url",
        "r2_path": "path",
    },
}


def storage_config_from_mapping(
    values: Mapping[str, Any],
    provider: Optional[str] = None
) -> StorageConfig:
    """Build a StorageConfig from a flat key/value settings map.

    Keys follow the settings-table format (``storage_provider``,
    ``github_token``, ``r2_bucket``, ...). Empty strings count as unset.

    Args:
        values: Flat settings mapping
        provider: Explicit provider, overrides ``storage_provider``

    Raises:
        ConfigurationError: If the provider is unknown
    """
    provider = provider or values.get("storage_provider") or StorageType.LOCAL.value
    if provider not in _MAPPING_FIELDS:
        raise ConfigurationError(
            f"Unknown storage provider '{provider}'",
            code=StorageErrorCode.PROVIDER_UNKNOWN,
            field="provider",
        )

    data: dict[str, Any] = {"provider": provider}
    for source, target in _MAPPING_FIELDS[provider].items():
        value = values.get(source)
        if value not in (None, ""):
            data[target] = value
    if "timeout" in values:
        data["timeout"] = values["timeout"]

    try:
        return parse_storage_config(data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid {provider} storage configuration: {e}",
            code=StorageErrorCode.VALIDATION_FAILED,
        ) from e


def get_storage_config(provider: Optional[str] = None) -> StorageConfig:
    """Get storage configuration from settings.

    Assembles StorageConfig from core.config.settings to maintain
    single source of truth for configuration.

    Args:
        provider: Per-call override of ``settings.storage.provider``

    Returns:
        Storage configuration variant for the provider
    """
    values = settings.storage.model_dump()
    values["storage_provider"] = values.pop("provider")
    return storage_config_from_mapping(values, provider)


def _default_middlewares() -> list[StorageMiddleware]:
    s = settings.storage
    middlewares: list[StorageMiddleware] = [LoggingMiddleware()]
    if s.validation_enabled:
        middlewares.append(ValidationMiddleware(s.max_file_size, s.allowed_types))
    return middlewares


async def open_storage(
    config: Optional[StorageConfig] = None,
    provider: Optional[str] = None
) -> StorageProvider:
    """Create a provider with the default middleware pipeline.

    Args:
        config: Explicit configuration; built from settings when omitted
        provider: Provider override used when ``config`` is omitted
    """
    if config is None:
        config = get_storage_config(provider)
    return await create_provider(config, _default_middlewares())


async def init_storage_client() -> None:
    """Initialize the default storage client.

    Creates and configures the storage provider based on configuration.
    """
    global _storage_client

    if _storage_client is not None:
        logger.warning("storage_client_already_initialized")
        return

    try:
        _storage_client = await open_storage()
        logger.info("storage_client_initialized", provider=settings.storage.provider)
    except Exception as e:
        logger.error("storage_client_init_failed", error=str(e))
        raise


def get_storage_client() -> Optional[StorageProvider]:
    """Get storage client instance.

    Returns:
        Storage provider instance or None if not initialized
    """
    return _storage_client


async def shutdown_storage_client() -> None:
    """Shutdown storage client and release its network clients."""
    global _storage_client

    if _storage_client is None:
        return

    try:
        await _storage_client.aclose()
        logger.info("storage_client_shutdown")
    finally:
        _storage_client = None


__all__ = [
    # Lifecycle
    "init_storage_client",
    "get_storage_client",
    "shutdown_storage_client",
    "open_storage",

    # Configuration
    "get_storage_config",
    "storage_config_from_mapping",
    "parse_storage_config",
    "StorageConfig",
    "StorageType",
    "GithubAccessMethod",
    "LocalStorageConfig",
    "GithubStorageConfig",
    "R2StorageConfig",

    # Factory
    "create_provider",
    "register_provider",
    "StorageProvider",

    # Models
    "UploadFileInput",
    "UploadResult",
    "MoveResult",
    "DeleteResult",
    "StorageFile",
    "ListOptions",
    "ListResult",

    # Exceptions
    "StorageError",
    "NotFoundError",
    "PermissionDeniedError",
    "TransientError",
    "ConfigurationError",
    "ValidationError",
    "PathConflictError",

    # Utils
    "StorageMiddleware",
    "LoggingMiddleware",
    "ValidationMiddleware",
    "apply_middleware",
    "build_key",
    "relocate_key",
    "thumbnail_key_for",
    "generate_filename",
    "calculate_content_hash",
    "guess_content_type",
]
