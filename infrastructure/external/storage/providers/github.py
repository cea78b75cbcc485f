"""GitHub repository storage provider implementation.

Files live in a repository branch and are written through the contents API.
Every write is an upsert: probe the current SHA, then commit with it.
"""
from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Optional

import httpx

from core.logging_config import get_logger
from infrastructure.external.api_clients.base import (
    APIError,
    AuthenticationError,
    NotFoundError as APINotFoundError,
    RateLimitError,
    ServerError,
    UnprocessableError,
)
from infrastructure.external.api_clients.github import GithubContentsClient
from shared.codes.storage_codes import StorageErrorCode
from ..config import GithubAccessMethod, GithubStorageConfig
from ..exceptions import (
    ConfigurationError,
    NotFoundError,
    PathConflictError,
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


def _is_path_conflict(error: APIError) -> bool:
    if not isinstance(error, UnprocessableError):
        return False
    text = error.message or ""
    return "exists where" in text and "subdirectory" in text


def _map_api_error(error: APIError, message: str, code: StorageErrorCode) -> StorageError:
    if isinstance(error, APINotFoundError):
        return NotFoundError(message, original_error=error)
    if isinstance(error, AuthenticationError):
        return PermissionDeniedError(message, original_error=error)
    if isinstance(error, (RateLimitError, ServerError)):
        return TransientError(message, original_error=error)
    return StorageError(message, code=code, original_error=error)


class GithubProvider:
    """GitHub repository storage provider."""

    def __init__(
        self,
        config: GithubStorageConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self.transport = transport
        self._client: Optional[GithubContentsClient] = None

    @property
    def owner(self) -> str:
        return self.config.repo.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.config.repo.split("/", 1)[1]

    @property
    def client(self) -> GithubContentsClient:
        if self._client is None:
            self._client = GithubContentsClient(
                owner=self.owner,
                repo=self.repo,
                branch=self.config.branch,
                token=self.config.token,
                api_url=self.config.api_url,
                timeout=self.config.timeout,
                transport=self.transport,
            )
        return self._client

    def validate_config(self) -> None:
        if not self.config.token:
            raise ConfigurationError(
                "GitHub token is required",
                code=StorageErrorCode.GITHUB_TOKEN_MISSING,
                field="token",
            )
        if not self.config.repo or "/" not in self.config.repo:
            raise ConfigurationError(
                'GitHub repo must be in format "owner/repo"',
                code=StorageErrorCode.GITHUB_REPO_INVALID,
                field="repo",
            )
        if self.config.access_method == GithubAccessMethod.PAGES and not self.config.pages_url:
            raise ConfigurationError(
                "GitHub Pages URL is required when using pages access method",
                code=StorageErrorCode.GITHUB_PAGES_URL_MISSING,
                field="pages_url",
            )

    def get_url(self, key: str) -> str:
        key = normalize_key(key)
        method = self.config.access_method
        if method == GithubAccessMethod.RAW:
            return (
                f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/"
                f"{self.config.branch}/{key}"
            )
        if method == GithubAccessMethod.PAGES:
            return f"{self.config.pages_url.rstrip('/')}/{key}"
        return f"https://cdn.jsdelivr.net/gh/{self.owner}/{self.repo}@{self.config.branch}/{key}"

    async def upload(
        self,
        file: UploadFileInput,
        thumbnail: Optional[UploadFileInput] = None
    ) -> UploadResult:
        key = build_key(self.config.path, file.path, file.filename, file.use_full_path)
        writes = [self._put_file(key, file.content, f"Upload: {file.filename}")]

        thumbnail_key = None
        if thumbnail is not None:
            thumbnail_key = build_key(
                self.config.path, thumbnail.path, thumbnail.filename, file.use_full_path
            )
            writes.append(
                self._put_file(thumbnail_key, thumbnail.content, f"Upload thumbnail: {thumbnail.filename}")
            )

        try:
            await gather_writes(*writes)
        except PathConflictError:
            raise
        except Exception as e:
            logger.error("github_upload_failed", key=key, thumbnail_key=thumbnail_key, error=str(e))
            raise StorageError(
                f"Failed to upload to GitHub: {e}",
                code=StorageErrorCode.GITHUB_UPLOAD_FAILED,
                original_error=e,
            ) from e

        logger.info("github_upload_completed", key=key, thumbnail_key=thumbnail_key)
        return UploadResult(
            url=self.get_url(key),
            key=key,
            thumbnail_url=self.get_url(thumbnail_key) if thumbnail_key else None,
            thumbnail_key=thumbnail_key,
        )

    async def download(self, key: str) -> bytes:
        try:
            data = await self.client.get_contents(key)
            if not isinstance(data, dict) or data.get("type") != "file":
                raise StorageError(
                    f"Invalid file response for {key}",
                    code=StorageErrorCode.GITHUB_DOWNLOAD_FAILED,
                )
            content = data.get("content")
            if content:
                return base64.b64decode(content)
            if not data.get("size"):
                return b""
            # Files over 1MB come back without inline content
            return await self.client.get_blob(data["sha"])
        except APIError as e:
            raise _map_api_error(
                e, f"Failed to download {key}: {e.message}", StorageErrorCode.GITHUB_DOWNLOAD_FAILED
            ) from e

    async def delete(self, key: str, thumbnail_key: Optional[str] = None) -> DeleteResult:
        result = DeleteResult()
        for target in filter(None, (key, thumbnail_key)):
            try:
                if await self._remove_file(target):
                    result.deleted.append(target)
                else:
                    logger.info("github_delete_missing", key=target)
                    result.missing.append(target)
            except Exception as e:
                logger.error("github_delete_failed", key=target, error=str(e))
                result.errors[target] = str(e)
        return result

    async def move(
        self,
        old_key: str,
        new_path: str,
        thumbnail_key: Optional[str] = None
    ) -> MoveResult:
        new_key = relocate_key(old_key, new_path)
        pairs = [(old_key, new_key, "Move")]
        new_thumbnail_key = None
        if thumbnail_key:
            new_thumbnail_key = relocate_key(thumbnail_key, new_path)
            pairs.append((thumbnail_key, new_thumbnail_key, "Move thumbnail"))

        leftovers = []
        for source, dest, verb in pairs:
            content = await self.download(source)
            if source == dest:
                continue
            try:
                await self._put_file(dest, content, f"{verb}: {source} -> {dest}")
            except PathConflictError:
                raise
            except Exception as e:
                raise StorageError(
                    f"Failed to move {source} to {dest}: {e}",
                    code=StorageErrorCode.GITHUB_MOVE_FAILED,
                    original_error=e,
                ) from e
            try:
                await self._remove_file(source)
            except Exception as e:
                logger.warning("github_move_cleanup_failed", key=source, new_key=dest, error=str(e))
                leftovers.append(source)

        logger.info("github_move_completed", old_key=old_key, new_key=new_key)
        return MoveResult(
            new_key=new_key,
            new_url=self.get_url(new_key),
            new_thumbnail_key=new_thumbnail_key,
            new_thumbnail_url=self.get_url(new_thumbnail_key) if new_thumbnail_key else None,
            leftover_keys=leftovers,
        )

    async def list(self, options: Optional[ListOptions] = None) -> ListResult:
        options = options or ListOptions()
        if options.full_scan:
            target = ""
        else:
            target = normalize_key(options.prefix or self.config.path)

        files: list[StorageFile] = []
        try:
            await self._list_recursive(target, files)
        except APIError as e:
            raise _map_api_error(
                e, f"Failed to list '{target}': {e.message}", StorageErrorCode.GITHUB_LIST_FAILED
            ) from e

        start = int(options.cursor) if options.cursor else 0
        limit = options.limit or DEFAULT_LIST_LIMIT
        has_more = start + limit < len(files)
        return ListResult(
            files=files[start:start + limit],
            cursor=str(start + limit) if has_more else None,
            has_more=has_more,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _list_recursive(self, path: str, files: list[StorageFile]) -> None:
        data = await self.client.find_contents(path)
        if data is None:
            return
        items = data if isinstance(data, list) else [data]
        # The contents API carries no modification time
        listed_at = datetime.now(timezone.utc)
        for item in items:
            if item.get("type") == "file":
                files.append(
                    StorageFile(
                        key=item["path"],
                        size=item.get("size") or 0,
                        last_modified=listed_at,
                        url=self.get_url(item["path"]),
                    )
                )
            elif item.get("type") == "dir":
                await self._list_recursive(item["path"], files)

    async def _put_file(self, path: str, content: bytes, message: str) -> None:
        sha = await self.client.probe(path)
        try:
            await self.client.commit(path, content, message, expected_sha=sha)
        except APIError as e:
            if _is_path_conflict(e):
                conflict = await self._find_path_conflict(path)
                if conflict:
                    raise PathConflictError(conflict, path, original_error=e) from e
            raise

    async def _remove_file(self, path: str) -> bool:
        """Delete one file; returns False when it does not exist."""
        sha = await self.client.probe(path)
        if sha is None:
            return False
        try:
            await self.client.remove(path, sha, f"Delete: {path}")
        except APINotFoundError:
            return False
        return True

    async def _find_path_conflict(self, path: str) -> Optional[str]:
        """First ancestor of ``path`` that exists as a file, if any."""
        parts = path.split("/")[:-1]
        current = ""
        for part in parts:
            current = f"{current}/{part}" if current else part
            try:
                data = await self.client.find_contents(current)
            except APIError as e:
                logger.warning("github_conflict_probe_failed", path=current, error=str(e))
                continue
            if isinstance(data, dict) and data.get("type") == "file":
                return current
        return None


async def build_github_provider(config: GithubStorageConfig) -> GithubProvider:
    """Build GitHub storage provider."""
    return GithubProvider(config)
