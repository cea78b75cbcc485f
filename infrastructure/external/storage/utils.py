"""Storage utility functions and middleware support."""
import asyncio
import hashlib
import mimetypes
import re
import secrets
import time
from pathlib import PurePosixPath
from typing import Optional

from core.logging_config import get_logger
from .base import StorageProvider
from .exceptions import ValidationError
from .models import (
    DeleteResult,
    ListOptions,
    ListResult,
    MoveResult,
    UploadFileInput,
    UploadResult,
)

logger = get_logger(__name__)

_MULTI_SLASH = re.compile(r"/+")

THUMBNAIL_PREFIX = "thumb-"


# Key generation utilities
def normalize_key(key: str) -> str:
    """Collapse repeated slashes and strip the leading one."""
    return _MULTI_SLASH.sub("/", key).lstrip("/")


def build_key(
    base_path: Optional[str],
    subfolder: Optional[str],
    filename: str,
    use_full_path: bool = False
) -> str:
    """Build a backend-relative storage key.

    ``..`` segments are not rejected here. Keys derived from user input must
    be sanitized by the caller; the local backend additionally confines
    resolved paths to its root.

    Args:
        base_path: Provider base path, prepended unless ``use_full_path``
        subfolder: Optional subfolder below the base path
        filename: Object file name
        use_full_path: Treat ``subfolder`` as absolute from the storage root

    Example:
        build_key("uploads", "2025", "a.jpg") -> "uploads/2025/a.jpg"
    """
    parts = []
    if not use_full_path and base_path:
        parts.append(base_path)
    if subfolder:
        parts.append(subfolder)
    parts.append(filename)
    return normalize_key("/".join(parts))


def relocate_key(old_key: str, new_path: Optional[str]) -> str:
    """Key for ``old_key``'s file name under ``new_path`` (absolute, no base path)."""
    filename = old_key.rsplit("/", 1)[-1]
    if not new_path:
        return filename
    return normalize_key(f"{new_path}/{filename}")


def thumbnail_key_for(key: str, prefix: str = THUMBNAIL_PREFIX) -> str:
    """Derive the paired thumbnail key: ``dir/name`` -> ``dir/thumb-name``."""
    head, sep, name = key.rpartition("/")
    return f"{head}{sep}{prefix}{name}"


def generate_filename(original_name: str) -> str:
    """Random 32 hex character name keeping the original extension."""
    return f"{secrets.token_hex(16)}{PurePosixPath(original_name).suffix}"


def guess_content_type(filename: str) -> str:
    """Guess content type from filename.

    Args:
        filename: File name or path

    Returns:
        MIME type string
    """
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


def calculate_content_hash(data: bytes) -> str:
    """SHA-256 hex digest used for duplicate detection.

    Must be computed on the original bytes, before compression.
    """
    return hashlib.sha256(data).hexdigest()


async def gather_writes(*writes) -> list:
    """Await all writes; raise the first failure only after every write settled."""
    results = await asyncio.gather(*writes, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


# Middleware support
class StorageMiddleware:
    """Base class for storage middleware."""

    async def before_upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> tuple[UploadFileInput, Optional[UploadFileInput]]:
        """Process before upload.

        Returns:
            Potentially modified (file, thumbnail)
        """
        return file, thumbnail

    async def after_upload(
        self,
        result: UploadResult,
        file: UploadFileInput
    ) -> UploadResult:
        """Process after successful upload."""
        return result

    async def on_error(
        self,
        error: Exception,
        operation: str,
        **kwargs
    ) -> None:
        """Handle errors during operations."""
        pass


class LoggingMiddleware(StorageMiddleware):
    """Middleware for structured logging of storage operations."""

    async def before_upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> tuple[UploadFileInput, Optional[UploadFileInput]]:
        logger.info(
            "storage_upload_starting",
            filename=file.filename,
            path=file.path,
            size=file.size,
            content_type=file.content_type,
            with_thumbnail=thumbnail is not None,
        )
        return file, thumbnail

    async def after_upload(
        self,
        result: UploadResult,
        file: UploadFileInput
    ) -> UploadResult:
        logger.info(
            "storage_upload_completed",
            key=result.key,
            url=result.url,
            thumbnail_key=result.thumbnail_key,
        )
        return result

    async def on_error(
        self,
        error: Exception,
        operation: str,
        **kwargs
    ) -> None:
        logger.error(
            "storage_operation_failed",
            operation=operation,
            error=str(error),
            **kwargs
        )


class ValidationMiddleware(StorageMiddleware):
    """Middleware for validating uploads."""

    def __init__(
        self,
        max_size: int = 100 * 1024 * 1024,  # 100MB
        allowed_types: Optional[list[str]] = None
    ):
        self.max_size = max_size
        self.allowed_types = allowed_types

    async def before_upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> tuple[UploadFileInput, Optional[UploadFileInput]]:
        if file.size > self.max_size:
            raise ValidationError(
                f"File too large: {file.size} > {self.max_size}"
            )

        if self.allowed_types and file.content_type not in self.allowed_types:
            raise ValidationError(
                f"Content type not allowed: {file.content_type}"
            )

        return file, thumbnail


class MiddlewareStorage:
    """Storage provider wrapper with middleware support."""

    def __init__(
        self,
        provider: StorageProvider,
        middlewares: list[StorageMiddleware]
    ):
        self.provider = provider
        self.middlewares = middlewares

    @property
    def config(self):
        return getattr(self.provider, "config", None)

    async def upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> UploadResult:
        """Upload with middleware processing."""
        for middleware in self.middlewares:
            try:
                file, thumbnail = await middleware.before_upload(file, thumbnail)
            except Exception as e:
                for mw in self.middlewares:
                    await mw.on_error(e, "before_upload", filename=file.filename)
                raise

        try:
            start_time = time.time()
            result = await self.provider.upload(file, thumbnail)
            elapsed_ms = (time.time() - start_time) * 1000
            logger.info(
                "storage_upload_performance",
                key=result.key,
                elapsed_ms=f"{elapsed_ms:.2f}",
                size=file.size,
            )
        except Exception as e:
            for middleware in self.middlewares:
                await middleware.on_error(e, "upload", filename=file.filename)
            raise

        for middleware in self.middlewares:
            result = await middleware.after_upload(result, file)

        return result

    # Delegate other methods to underlying provider
    def validate_config(self) -> None:
        self.provider.validate_config()

    async def delete(self, key: str, thumbnail_key: Optional[str] = None) -> DeleteResult:
        return await self.provider.delete(key, thumbnail_key)

    async def download(self, key: str) -> bytes:
        return await self.provider.download(key)

    async def move(
        self,
        old_key: str,
        new_path: str,
        thumbnail_key: Optional[str] = None
    ) -> MoveResult:
        return await self.provider.move(old_key, new_path, thumbnail_key)

    async def list(self, options: Optional[ListOptions] = None) -> ListResult:
        return await self.provider.list(options)

    def get_url(self, key: str) -> str:
        return self.provider.get_url(key)

    async def aclose(self) -> None:
        await self.provider.aclose()


def apply_middleware(
    provider: StorageProvider,
    middlewares: list[StorageMiddleware]
) -> StorageProvider:
    """Apply middleware to a storage provider.

    Args:
        provider: Base storage provider
        middlewares: List of middleware to apply

    Returns:
        Provider wrapped with middleware
    """
    if not middlewares:
        return provider

    return MiddlewareStorage(provider, middlewares)
