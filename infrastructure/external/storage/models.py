"""Storage data transfer objects."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class UploadFileInput(BaseModel):
    """Payload for a single object write."""
    content: bytes
    filename: str
    path: Optional[str] = None  # Subfolder below the base path
    content_type: str = "application/octet-stream"
    use_full_path: bool = False  # Treat ``path`` as absolute, skip the base path

    @property
    def size(self) -> int:
        return len(self.content)


class UploadResult(BaseModel):
    """Upload operation result."""
    url: str
    key: str
    thumbnail_url: Optional[str] = None
    thumbnail_key: Optional[str] = None


class MoveResult(BaseModel):
    """Move operation result.

    ``leftover_keys`` lists old keys that could not be removed after the new
    copy was confirmed; the move itself succeeded.
    """
    new_key: str
    new_url: str
    new_thumbnail_key: Optional[str] = None
    new_thumbnail_url: Optional[str] = None
    leftover_keys: list[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    """Outcome of a best-effort delete."""
    deleted: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class StorageFile(BaseModel):
    """Object as observed by a backend listing."""
    key: str
    size: int
    last_modified: datetime
    url: str


class ListOptions(BaseModel):
    prefix: Optional[str] = None
    cursor: Optional[str] = None  # Opaque, backend specific
    limit: Optional[int] = Field(default=None, ge=1)
    full_scan: bool = False  # Scan the whole root, ignore the base path


class ListResult(BaseModel):
    files: list[StorageFile] = Field(default_factory=list)
    cursor: Optional[str] = None
    has_more: bool = False
