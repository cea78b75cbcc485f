"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class StorageSettings(BaseModel):
    provider: str = "local"  # local, github, r2
    # Local filesystem
    local_base_path: str = "public/uploads"
    local_base_url: str = "/uploads"
    # GitHub repository
    github_token: Optional[str] = None
    github_repo: Optional[str] = None  # owner/repo
    github_path: str = "uploads"
    github_branch: str = "main"
    github_access_method: str = "jsdelivr"  # raw, jsdelivr, pages
    github_pages_url: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    # Cloudflare R2
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket: Optional[str] = None
    r2_endpoint: Optional[str] = None
    r2_public_url: Optional[str] = None
    r2_path: str = ""
    # Advanced settings
    timeout: int = 30
    validation_enabled: bool = False
    max_file_size: int = 100 * 1024 * 1024  # 100MB
    allowed_types: Optional[list[str]] = None


class UploadQueueSettings(BaseModel):
    concurrency: int = 4
    compress_threshold_mb: float = 4.0
    thumbnail_prefix: str = "thumb-"

    @field_validator("concurrency")
    @classmethod
    def _positive_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("upload_queue.concurrency must be >= 1")
        return v

    @property
    def compress_threshold_bytes(self) -> int:
        return int(self.compress_threshold_mb * 1024 * 1024)


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = "Photo Media Storage"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api/v1"

    # 分组配置：Storage/UploadQueue 采用嵌套模型
    storage: StorageSettings = Field(default_factory=StorageSettings)
    upload_queue: UploadQueueSettings = Field(default_factory=UploadQueueSettings)

    # 列表分页配置
    DEFAULT_LIST_LIMIT: int = 1000

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settings = Settings()
