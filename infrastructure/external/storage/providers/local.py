"""Local file system storage provider implementation."""
from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import anyio

from core.logging_config import get_logger
from shared.codes.storage_codes import StorageErrorCode
from ..config import LocalStorageConfig
from ..exceptions import (
    ConfigurationError,
    NotFoundError,
    StorageError,
    ValidationError,
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


def _under_prefix(key: str, prefix: str) -> bool:
    return not prefix or key == prefix or key.startswith(f"{prefix}/")


class LocalProvider:
    """Local file system storage provider.

    Keys are relative to ``config.base_path``; public URLs are
    ``config.base_url/key``.
    """

    def __init__(self, config: LocalStorageConfig):
        self.config = config

    @property
    def root(self) -> Path:
        return Path(self.config.base_path).resolve()

    def validate_config(self) -> None:
        if not self.config.base_path:
            raise ConfigurationError(
                "Local storage base path is not configured",
                code=StorageErrorCode.LOCAL_BASE_PATH_MISSING,
                field="base_path",
            )

    def get_url(self, key: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{normalize_key(key)}"

    async def upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> UploadResult:
        key = build_key(None, file.path, file.filename, file.use_full_path)
        thumbnail_key = None
        if thumbnail is not None:
            thumbnail_key = build_key(
                None, thumbnail.path, thumbnail.filename, thumbnail.use_full_path
            )

        writes = [self._write(key, file.content)]
        if thumbnail is not None:
            writes.append(self._write(thumbnail_key, thumbnail.content))

        try:
            await gather_writes(*writes)
        except ValidationError:
            raise
        except Exception as e:
            raise StorageError(
                f"Failed to upload {key}: {e}",
                code=StorageErrorCode.LOCAL_UPLOAD_FAILED,
                original_error=e,
            ) from e

        logger.info("local_upload_completed", key=key, size=file.size, thumbnail_key=thumbnail_key)
        return UploadResult(
            url=self.get_url(key),
            key=key,
            thumbnail_url=self.get_url(thumbnail_key) if thumbnail_key else None,
            thumbnail_key=thumbnail_key,
        )

    async def download(self, key: str) -> bytes:
        file_path = self._safe_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {key}")
        try:
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()
        except Exception as e:
            raise StorageError(
                f"Failed to download {key}: {e}",
                code=StorageErrorCode.LOCAL_DOWNLOAD_FAILED,
                original_error=e,
            ) from e

    async def delete(self, key: str, thumbnail_key: Optional[str] = None) -> DeleteResult:
        result = DeleteResult()
        for target in filter(None, (key, thumbnail_key)):
            try:
                file_path = self._safe_path(target)
                if not file_path.exists():
                    result.missing.append(target)
                    continue
                await aiofiles.os.remove(file_path)
                result.deleted.append(target)
            except Exception as e:
                logger.warning("local_delete_failed", key=target, error=str(e))
                result.errors[target] = str(e)
        return result

    async def move(
        self,
        old_key: str,
        new_path: str,
        thumbnail_key: Optional[str] = None
    ) -> MoveResult:
        new_key = relocate_key(old_key, new_path)
        new_thumbnail_key = relocate_key(thumbnail_key, new_path) if thumbnail_key else None

        pairs = [(old_key, new_key)]
        if thumbnail_key:
            pairs.append((thumbnail_key, new_thumbnail_key))

        for source, dest in pairs:
            source_path = self._safe_path(source)
            if not source_path.is_file():
                raise NotFoundError(f"Source file not found: {source}")
            if source == dest:
                continue
            dest_path = self._safe_path(dest)
            try:
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                await anyio.to_thread.run_sync(shutil.copy2, source_path, dest_path)
            except Exception as e:
                raise StorageError(
                    f"Failed to move {source} to {dest}: {e}",
                    code=StorageErrorCode.LOCAL_MOVE_FAILED,
                    original_error=e,
                ) from e

        leftovers = []
        for source, dest in pairs:
            if source == dest:
                continue
            try:
                await aiofiles.os.remove(self._safe_path(source))
            except Exception as e:
                logger.warning("local_move_cleanup_failed", key=source, error=str(e))
                leftovers.append(source)

        logger.info("local_move_completed", old_key=old_key, new_key=new_key)
        return MoveResult(
            new_key=new_key,
            new_url=self.get_url(new_key),
            new_thumbnail_key=new_thumbnail_key,
            new_thumbnail_url=self.get_url(new_thumbnail_key) if new_thumbnail_key else None,
            leftover_keys=leftovers,
        )

    async def list(self, options: Optional[ListOptions] = None) -> ListResult:
        options = options or ListOptions()
        prefix = "" if options.full_scan else normalize_key(options.prefix or "")
        limit = options.limit or DEFAULT_LIST_LIMIT
        offset = int(options.cursor) if options.cursor else 0

        try:
            paths = await anyio.to_thread.run_sync(self._walk, prefix)
        except Exception as e:
            raise StorageError(
                f"Failed to list files with prefix '{prefix}': {e}",
                code=StorageErrorCode.LOCAL_LIST_FAILED,
                original_error=e,
            ) from e

        page = paths[offset:offset + limit]
        files = []
        for path in page:
            stat = path.stat()
            key = path.relative_to(self.root).as_posix()
            files.append(
                StorageFile(
                    key=key,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    url=self.get_url(key),
                )
            )

        has_more = offset + limit < len(paths)
        return ListResult(
            files=files,
            cursor=str(offset + limit) if has_more else None,
            has_more=has_more,
        )

    async def aclose(self) -> None:
        return None

    def _walk(self, prefix: str) -> list[Path]:
        """Files under the directory `prefix`, or the single file named by it."""
        root = self.root
        if not root.exists():
            return []
        prefix = prefix.rstrip("/")
        return sorted(
            (
                path for path in root.rglob("*")
                if path.is_file()
                and _under_prefix(path.relative_to(root).as_posix(), prefix)
            ),
            key=lambda p: p.relative_to(root).as_posix(),
        )

    async def _write(self, key: str, content: bytes) -> None:
        file_path = self._safe_path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(file_path, "wb") as f:
            await f.write(content)

    def _safe_path(self, key: str) -> Path:
        """Resolve ``key`` below the root, rejecting traversal outside it."""
        root = self.root
        path = (root / normalize_key(key)).resolve()
        if path != root and root not in path.parents:
            raise ValidationError(f"Invalid key outside storage root: {key}")
        return path


async def build_local_provider(config: LocalStorageConfig) -> LocalProvider:
    """Build local storage provider."""
    return LocalProvider(config)
