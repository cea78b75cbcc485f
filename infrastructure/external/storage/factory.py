"""Storage provider factory with registry pattern."""
from typing import Callable, Awaitable, Optional
import importlib

from core.logging_config import get_logger
from shared.codes.storage_codes import StorageErrorCode
from .base import StorageProvider
from .config import StorageConfig, StorageType
from .exceptions import ConfigurationError
from .utils import StorageMiddleware, apply_middleware

logger = get_logger(__name__)

# Provider builder type
ProviderBuilder = Callable[[StorageConfig], Awaitable[StorageProvider]]

# Global registry for storage providers
_provider_registry: dict[str, ProviderBuilder] = {}

_BUILTIN_PROVIDERS = [
    (StorageType.LOCAL, "infrastructure.external.storage.providers.local", "build_local_provider"),
    (StorageType.GITHUB, "infrastructure.external.storage.providers.github", "build_github_provider"),
    (StorageType.R2, "infrastructure.external.storage.providers.r2", "build_r2_provider"),
]


def register_provider(
    storage_type: str,
    builder: ProviderBuilder
) -> None:
    """Register a storage provider builder.

    Args:
        storage_type: Provider discriminator value
        builder: Async function to build provider instance
    """
    _provider_registry[StorageType(storage_type).value] = builder
    logger.debug("storage_provider_registered", provider=StorageType(storage_type).value)


async def create_provider(
    config: StorageConfig,
    middlewares: Optional[list[StorageMiddleware]] = None
) -> StorageProvider:
    """Create storage provider instance based on config.

    The provider's ``validate_config`` runs before it is returned, so a
    misconfigured backend fails here and never reaches the network.

    Args:
        config: Storage configuration variant
        middlewares: Optional upload middleware chain

    Returns:
        Configured storage provider instance

    Raises:
        ConfigurationError: If provider type not registered, invalid or creation fails
    """
    provider_type = config.provider
    if provider_type not in _provider_registry:
        _auto_register_providers()

        if provider_type not in _provider_registry:
            raise ConfigurationError(
                f"Storage provider '{provider_type}' not registered. "
                f"Available: {sorted(_provider_registry)}",
                code=StorageErrorCode.PROVIDER_UNKNOWN,
                field="provider",
            )

    builder = _provider_registry[provider_type]

    try:
        provider = await builder(config)
    except Exception as e:
        logger.error("storage_provider_create_failed", provider=provider_type, error=str(e))
        raise ConfigurationError(
            f"Failed to create storage provider '{provider_type}': {e}"
        ) from e

    provider.validate_config()
    logger.debug("storage_provider_created", provider=provider_type)
    return apply_middleware(provider, middlewares or [])


def _auto_register_providers() -> None:
    """Auto-register built-in storage providers."""
    for storage_type, module_path, builder_name in _BUILTIN_PROVIDERS:
        if storage_type.value in _provider_registry:
            continue

        module = importlib.import_module(module_path)
        register_provider(storage_type, getattr(module, builder_name))
