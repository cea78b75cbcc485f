"""Cloudflare R2 storage provider implementation (S3 compatible API)."""
from functools import partial
from typing import Any, Optional

import anyio
import boto3
from botocore.config import Config as BotoConfig

from core.logging_config import get_logger
from shared.codes.storage_codes import StorageErrorCode
from ..config import R2StorageConfig
from ..exceptions import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TransientError,
)
from ..models import (
    DeleteResult,
    ListOptions,
    ListResult,
    MoveResult,
    StorageFile,
    UploadFileInput,
    UploadResult,
)
from ..utils import build_key, gather_writes, normalize_key, relocate_key

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 1000
MAX_KEYS_PER_REQUEST = 1000

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(e: Exception) -> str:
    return getattr(e, "response", {}).get("Error", {}).get("Code", "")


class R2Provider:
    """Cloudflare R2 storage provider."""

    def __init__(
        self,
        config: R2StorageConfig,
        client: Any = None  # boto3 S3 client
    ):
        """Initialize R2 provider.

        Args:
            config: R2 storage configuration
            client: Prebuilt S3 client; built lazily from config when omitted
        """
        self.config = config
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.config.endpoint,
                aws_access_key_id=self.config.access_key_id,
                aws_secret_access_key=self.config.secret_access_key,
                region_name="auto",
                config=BotoConfig(
                    signature_version="s3v4",
                    retries={"max_attempts": 1, "mode": "standard"},
                    connect_timeout=self.config.timeout,
                    read_timeout=self.config.timeout,
                ),
            )
        return self._client

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def validate_config(self) -> None:
        required = (
            ("access_key_id", StorageErrorCode.R2_ACCESS_KEY_MISSING, "R2 access key ID is required"),
            ("secret_access_key", StorageErrorCode.R2_SECRET_KEY_MISSING, "R2 secret access key is required"),
            ("bucket", StorageErrorCode.R2_BUCKET_MISSING, "R2 bucket name is required"),
            ("endpoint", StorageErrorCode.R2_ENDPOINT_MISSING, "R2 endpoint is required"),
            ("public_url", StorageErrorCode.R2_PUBLIC_URL_MISSING, "R2 public URL is required"),
        )
        for field, code, message in required:
            if not getattr(self.config, field):
                raise ConfigurationError(message, code=code, field=field)

    def get_url(self, key: str) -> str:
        return f"{self.config.public_url.rstrip('/')}/{normalize_key(key)}"

    async def upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> UploadResult:
        key = build_key(self.config.path, file.path, file.filename, file.use_full_path)
        writes = [self._put(key, file.content, file.content_type)]

        thumbnail_key = None
        if thumbnail is not None:
            thumbnail_key = build_key(
                self.config.path, thumbnail.path, thumbnail.filename, file.use_full_path
            )
            writes.append(self._put(thumbnail_key, thumbnail.content, thumbnail.content_type))

        try:
            await gather_writes(*writes)
        except Exception as e:
            logger.error("r2_upload_failed", key=key, thumbnail_key=thumbnail_key, error=str(e))
            raise StorageError(
                f"Failed to upload to R2: {e}",
                code=StorageErrorCode.R2_UPLOAD_FAILED,
                original_error=e,
            ) from e

        logger.info("r2_upload_completed", key=key, size=file.size, thumbnail_key=thumbnail_key)
        return UploadResult(
            url=self.get_url(key),
            key=key,
            thumbnail_url=self.get_url(thumbnail_key) if thumbnail_key else None,
            thumbnail_key=thumbnail_key,
        )

    async def download(self, key: str) -> bytes:
        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.get_object, Bucket=self.bucket, Key=key)
            )
        except Exception as e:
            raise self._map_exception(e, f"download {key}", StorageErrorCode.R2_DOWNLOAD_FAILED) from e

        body = response["Body"]
        try:
            return await anyio.to_thread.run_sync(body.read)
        except Exception as e:
            raise self._map_exception(e, f"download {key}", StorageErrorCode.R2_DOWNLOAD_FAILED) from e
        finally:
            await anyio.to_thread.run_sync(body.close)

    async def delete(self, key: str, thumbnail_key: Optional[str] = None) -> DeleteResult:
        result = DeleteResult()
        for target in filter(None, (key, thumbnail_key)):
            try:
                await anyio.to_thread.run_sync(
                    partial(self.client.delete_object, Bucket=self.bucket, Key=target)
                )
                result.deleted.append(target)
            except Exception as e:
                if _error_code(e) in _NOT_FOUND_CODES:
                    result.missing.append(target)
                    continue
                logger.error("r2_delete_failed", key=target, error=str(e))
                result.errors[target] = str(e)
        return result

    async def move(
        self,
        old_key: str,
        new_path: str,
        thumbnail_key: Optional[str] = None
    ) -> MoveResult:
        new_key = relocate_key(old_key, new_path)
        pairs = [(old_key, new_key)]
        new_thumbnail_key = None
        if thumbnail_key:
            new_thumbnail_key = relocate_key(thumbnail_key, new_path)
            pairs.append((thumbnail_key, new_thumbnail_key))

        leftovers = []
        for source, dest in pairs:
            if source == dest:
                continue
            try:
                await anyio.to_thread.run_sync(
                    partial(
                        self.client.copy_object,
                        Bucket=self.bucket,
                        CopySource={"Bucket": self.bucket, "Key": source},
                        Key=dest,
                    )
                )
            except Exception as e:
                raise self._map_exception(
                    e, f"move {source} -> {dest}", StorageErrorCode.R2_MOVE_FAILED
                ) from e
            try:
                await anyio.to_thread.run_sync(
                    partial(self.client.delete_object, Bucket=self.bucket, Key=source)
                )
            except Exception as e:
                logger.warning("r2_move_cleanup_failed", key=source, new_key=dest, error=str(e))
                leftovers.append(source)

        logger.info("r2_move_completed", old_key=old_key, new_key=new_key)
        return MoveResult(
            new_key=new_key,
            new_url=self.get_url(new_key),
            new_thumbnail_key=new_thumbnail_key,
            new_thumbnail_url=self.get_url(new_thumbnail_key) if new_thumbnail_key else None,
            leftover_keys=leftovers,
        )

    async def list(self, options: Optional[ListOptions] = None) -> ListResult:
        options = options or ListOptions()
        prefix = "" if options.full_scan else normalize_key(options.prefix or self.config.path or "")
        limit = options.limit or DEFAULT_LIST_LIMIT

        files: list[StorageFile] = []
        token = options.cursor
        while True:
            params = {
                "Bucket": self.bucket,
                "MaxKeys": min(limit - len(files), MAX_KEYS_PER_REQUEST),
            }
            if prefix:
                params["Prefix"] = prefix
            if token:
                params["ContinuationToken"] = token

            try:
                response = await anyio.to_thread.run_sync(
                    partial(self.client.list_objects_v2, **params)
                )
            except Exception as e:
                raise self._map_exception(
                    e, f"list '{prefix}'", StorageErrorCode.R2_LIST_FAILED
                ) from e

            for obj in response.get("Contents", []):
                files.append(
                    StorageFile(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        last_modified=obj["LastModified"],
                        url=self.get_url(obj["Key"]),
                    )
                )

            token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
            if not token or len(files) >= limit:
                break

        return ListResult(files=files, cursor=token, has_more=token is not None)

    async def aclose(self) -> None:
        return None

    async def _put(self, key: str, content: bytes, content_type: str) -> None:
        await anyio.to_thread.run_sync(
            partial(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        )

    def _map_exception(
        self,
        e: Exception,
        operation: str,
        code: StorageErrorCode
    ) -> StorageError:
        """Map S3 exceptions to storage exceptions."""
        error_code = _error_code(e)

        if error_code in _NOT_FOUND_CODES:
            return NotFoundError(f"Object not found: {operation}", original_error=e)
        if error_code in ("AccessDenied", "403"):
            return PermissionDeniedError(f"Access denied: {operation}", original_error=e)
        if error_code in ("RequestTimeout", "SlowDown", "ServiceUnavailable"):
            return TransientError(f"Transient error: {operation}: {e}", original_error=e)
        return StorageError(f"R2 error during {operation}: {e}", code=code, original_error=e)


async def build_r2_provider(config: R2StorageConfig) -> R2Provider:
    """Build R2 storage provider; the S3 client is created on first use."""
    return R2Provider(config)
