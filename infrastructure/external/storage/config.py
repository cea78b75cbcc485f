"""Storage configuration models.

``StorageConfig`` is a closed tagged union keyed by ``provider``; each
variant carries only the fields relevant to its backend. Required fields
are Optional on purpose: presence is checked by the provider's
``validate_config`` so callers get a typed ``ConfigurationError`` naming
the first missing field instead of a pydantic error.
"""
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StorageType(str, Enum):
    """Storage provider types."""
    LOCAL = "local"
    GITHUB = "github"
    R2 = "r2"


class GithubAccessMethod(str, Enum):
    """How public URLs for repository-hosted files are built."""
    RAW = "raw"
    JSDELIVR = "jsdelivr"
    PAGES = "pages"


class _BaseStorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    timeout: int = 30


class LocalStorageConfig(_BaseStorageConfig):
    """Local filesystem storage."""
    provider: Literal["local"] = "local"
    base_path: Optional[str] = None
    base_url: str = "/uploads"


class GithubStorageConfig(_BaseStorageConfig):
    """GitHub repository storage (contents API)."""
    provider: Literal["github"] = "github"
    token: Optional[str] = None
    repo: Optional[str] = None  # "owner/repo"
    path: str = "uploads"
    branch: str = "main"
    access_method: GithubAccessMethod = GithubAccessMethod.JSDELIVR
    pages_url: Optional[str] = None
    api_url: str = "https://api.github.com"


class R2StorageConfig(_BaseStorageConfig):
    """Cloudflare R2 storage (S3 compatible API)."""
    provider: Literal["r2"] = "r2"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    public_url: Optional[str] = None
    path: str = ""


StorageConfig = Annotated[
    Union[LocalStorageConfig, GithubStorageConfig, R2StorageConfig],
    Field(discriminator="provider"),
]

_storage_config_adapter: TypeAdapter = TypeAdapter(StorageConfig)


def parse_storage_config(data: dict) -> StorageConfig:
    """Validate a plain mapping into the matching StorageConfig variant."""
    return _storage_config_adapter.validate_python(data)
