"""Application-owned ports for photo ingestion (hexagonal architecture).

The upload scheduler and ingest services talk to metadata persistence,
image processing and album management only through these protocols.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union, runtime_checkable


ProgressCallback = Callable[[int], None]

BatchCompleteCallback = Callable[
    [list[str], Optional[str], list[str]],
    Union[None, Awaitable[None]],
]


@dataclass
class PhotoUploadRequest:
    task_id: str
    content: bytes
    file_name: str
    content_type: str
    title: str
    storage_config: Any
    categories: list[str] = field(default_factory=list)
    storage_path: Optional[str] = None
    story_id: Optional[str] = None
    file_hash: Optional[str] = None


@dataclass
class UploadedPhoto:
    photo_id: str
    url: str
    key: str
    thumbnail_url: Optional[str] = None
    thumbnail_key: Optional[str] = None


@dataclass
class PhotoRecord:
    """Metadata handed to the recorder once the bytes are stored."""
    title: str
    file_name: str
    size: int
    storage_provider: str
    url: str
    key: str
    thumbnail_url: Optional[str] = None
    thumbnail_key: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    file_hash: Optional[str] = None
    story_id: Optional[str] = None


@dataclass
class DuplicateMatch:
    file_hash: str
    photo_id: str
    title: Optional[str] = None


@dataclass
class PhotoUrlRecord:
    photo_id: str
    url: str
    thumbnail_url: Optional[str] = None


@runtime_checkable
class PhotoUploader(Protocol):
    async def upload(
        self,
        request: PhotoUploadRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadedPhoto: ...


@runtime_checkable
class DuplicateChecker(Protocol):
    async def find_duplicates(self, hashes: Sequence[str]) -> dict[str, DuplicateMatch]: ...


@runtime_checkable
class AlbumLinker(Protocol):
    async def add_photos(self, album_id: str, photo_ids: Sequence[str]) -> None: ...


@runtime_checkable
class ImageCompressor(Protocol):
    async def compress(self, content: bytes, content_type: str) -> bytes: ...


@runtime_checkable
class Thumbnailer(Protocol):
    async def render(self, content: bytes, content_type: str) -> Optional[bytes]: ...


@runtime_checkable
class PhotoRecorder(Protocol):
    async def record(self, record: PhotoRecord) -> str: ...


@runtime_checkable
class PhotoUrlRepository(Protocol):
    async def list_by_provider(self, provider: str) -> list[PhotoUrlRecord]: ...

    async def update_urls(
        self,
        photo_id: str,
        url: str,
        thumbnail_url: Optional[str],
    ) -> None: ...
