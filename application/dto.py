"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_serializer


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class StorageFileDTO(DTOBase):
    key: str
    size: int
    last_modified: datetime
    url: str


class StorageListResponseDTO(DTOBase):
    files: list[StorageFileDTO]
    cursor: Optional[str] = None
    has_more: bool = False


class StorageUploadResponseDTO(DTOBase):
    key: str
    url: str
    size: int
    content_type: str


class StorageMoveRequestDTO(DTOBase):
    """移动文件请求：new_path 为从存储根开始的绝对目录"""
    old_key: str = Field(..., min_length=1, description="原文件 key")
    new_path: str = Field("", description="目标目录（不拼接 base path）")
    thumbnail_key: Optional[str] = Field(None, description="缩略图 key")
    provider: Optional[str] = Field(None, description="存储提供商，默认取配置")


class StorageMoveResponseDTO(DTOBase):
    new_key: str
    new_url: str
    new_thumbnail_key: Optional[str] = None
    new_thumbnail_url: Optional[str] = None
    leftover_keys: list[str] = Field(default_factory=list)


class StorageCleanupRequestDTO(DTOBase):
    keys: list[str] = Field(..., min_length=1, description="待删除的文件 key（缩略图自动推导）")
    provider: Optional[str] = Field(None, description="存储提供商，默认取配置")

    @field_validator("keys")
    @classmethod
    def _strip_empty(cls, v: list[str]) -> list[str]:
        keys = [k.strip() for k in v if k and k.strip()]
        if not keys:
            raise ValueError("keys must contain at least one non-empty key")
        return keys


class StorageCleanupResponseDTO(DTOBase):
    deleted: int
    failed: int
    errors: list[str] = Field(default_factory=list)
