"""Storage housekeeping: orphan cleanup and public URL rewrites."""
from __future__ import annotations

from typing import Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel, Field

from application.ports.uploads import PhotoUrlRepository
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import InvalidParameterException
from infrastructure.external.storage import (
    StorageConfig,
    StorageProvider,
    open_storage,
    thumbnail_key_for,
)

logger = get_logger(__name__)

StorageOpener = Callable[[StorageConfig], Awaitable[StorageProvider]]


class CleanupReport(BaseModel):
    deleted: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class UrlRewriteReport(BaseModel):
    updated: int = 0
    failed: int = 0


class StorageMaintenanceService:
    def __init__(
        self,
        url_repository: Optional[PhotoUrlRepository] = None,
        storage_opener: StorageOpener = open_storage,
        thumbnail_prefix: Optional[str] = None,
    ):
        self._url_repository = url_repository
        self._storage_opener = storage_opener
        self._thumbnail_prefix = thumbnail_prefix or settings.upload_queue.thumbnail_prefix

    async def cleanup(self, config: StorageConfig, keys: Sequence[str]) -> CleanupReport:
        """Delete each key together with its derived thumbnail key.

        A key that already is a thumbnail is deleted on its own.
        """
        if not keys:
            raise InvalidParameterException("No keys provided", field="keys")

        report = CleanupReport()
        provider = await self._storage_opener(config)
        try:
            for key in keys:
                name = key.rsplit("/", 1)[-1]
                thumb = None if name.startswith(self._thumbnail_prefix) else thumbnail_key_for(key, self._thumbnail_prefix)
                result = await provider.delete(key, thumb)
                if key in result.errors:
                    report.failed += 1
                    report.errors.append(f"{key}: {result.errors[key]}")
                else:
                    report.deleted += 1
                if thumb and thumb in result.errors:
                    report.errors.append(f"{thumb}: {result.errors[thumb]}")
        finally:
            await provider.aclose()

        logger.info("storage_cleanup_completed", provider=config.provider,
                    deleted=report.deleted, failed=report.failed)
        return report

    async def rewrite_public_urls(
        self,
        provider: str,
        old_public_url: str,
        new_public_url: str,
    ) -> UrlRewriteReport:
        """Replace ``old_public_url`` with ``new_public_url`` in stored photo URLs.

        Used once after a provider's public endpoint changes. Photos whose URLs
        do not contain the old prefix are left untouched and not counted.
        """
        if not old_public_url or not new_public_url:
            raise InvalidParameterException("Both old and new public URLs are required")
        if self._url_repository is None:
            raise InvalidParameterException("No photo URL repository configured")

        report = UrlRewriteReport()
        for photo in await self._url_repository.list_by_provider(provider):
            url = photo.url.replace(old_public_url, new_public_url)
            thumbnail_url = (
                photo.thumbnail_url.replace(old_public_url, new_public_url)
                if photo.thumbnail_url else None
            )
            if url == photo.url and thumbnail_url == photo.thumbnail_url:
                continue
            try:
                await self._url_repository.update_urls(photo.photo_id, url, thumbnail_url)
                report.updated += 1
            except Exception as e:
                report.failed += 1
                logger.error("photo_url_rewrite_failed", photo_id=photo.photo_id, error=str(e))

        logger.info("photo_url_rewrite_completed", provider=provider,
                    updated=report.updated, failed=report.failed)
        return report
