"""Storage provider protocol definitions."""
from typing import Optional, Protocol, runtime_checkable

from .models import (
    DeleteResult,
    ListOptions,
    ListResult,
    MoveResult,
    UploadFileInput,
    UploadResult,
)


@runtime_checkable
class StorageProvider(Protocol):
    """Uniform contract implemented by every storage backend."""

    def validate_config(self) -> None:
        """Check required settings; raise ConfigurationError without any I/O."""
        ...

    async def upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> UploadResult:
        """Write the original and, if given, its thumbnail concurrently."""
        ...

    async def delete(
        self,
        key: str,
        thumbnail_key: Optional[str] = None
    ) -> DeleteResult:
        """Best-effort delete; missing objects count as success."""
        ...

    async def download(self, key: str) -> bytes:
        """Read an object; raise NotFoundError when absent."""
        ...

    async def move(
        self,
        old_key: str,
        new_path: str,
        thumbnail_key: Optional[str] = None
    ) -> MoveResult:
        """Relocate a file (and thumbnail) under ``new_path`` from the storage root."""
        ...

    async def list(self, options: Optional[ListOptions] = None) -> ListResult:
        """Return one page of files below a prefix."""
        ...

    def get_url(self, key: str) -> str:
        """Public URL for a key; never performs I/O."""
        ...

    async def aclose(self) -> None:
        """Release network clients held by the provider."""
        ...
