"""Photo ingest workflow: store original + thumbnail, then record metadata."""
from __future__ import annotations

from typing import Awaitable, Callable, Optional

from application.ports.uploads import (
    PhotoRecord,
    PhotoRecorder,
    PhotoUploadRequest,
    ProgressCallback,
    Thumbnailer,
    UploadedPhoto,
)
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.storage import (
    StorageConfig,
    StorageProvider,
    UploadFileInput,
    generate_filename,
    open_storage,
)

logger = get_logger(__name__)

StorageOpener = Callable[[StorageConfig], Awaitable[StorageProvider]]


class PhotoIngestService:
    """Implements the scheduler's ``PhotoUploader`` port.

    The provider is opened from the task's own storage configuration, which
    also validates it before any bytes leave the process.
    """

    def __init__(
        self,
        recorder: PhotoRecorder,
        thumbnailer: Optional[Thumbnailer] = None,
        storage_opener: StorageOpener = open_storage,
        thumbnail_prefix: Optional[str] = None,
    ):
        self._recorder = recorder
        self._thumbnailer = thumbnailer
        self._storage_opener = storage_opener
        self._thumbnail_prefix = thumbnail_prefix or settings.upload_queue.thumbnail_prefix

    async def upload(
        self,
        request: PhotoUploadRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadedPhoto:
        progress = on_progress or (lambda _value: None)

        provider = await self._storage_opener(request.storage_config)
        try:
            filename = generate_filename(request.file_name)
            original = UploadFileInput(
                content=request.content,
                filename=filename,
                path=request.storage_path,
                content_type=request.content_type,
            )

            thumbnail = None
            if self._thumbnailer is not None:
                thumb_bytes = await self._thumbnailer.render(request.content, request.content_type)
                if thumb_bytes:
                    thumbnail = UploadFileInput(
                        content=thumb_bytes,
                        filename=f"{self._thumbnail_prefix}{filename}",
                        path=request.storage_path,
                        content_type=request.content_type,
                    )
            progress(20)

            result = await provider.upload(original, thumbnail)
            progress(80)
        finally:
            await provider.aclose()

        provider_name = request.storage_config.provider
        try:
            photo_id = await self._recorder.record(
                PhotoRecord(
                    title=request.title,
                    file_name=request.file_name,
                    size=len(request.content),
                    storage_provider=provider_name,
                    url=result.url,
                    key=result.key,
                    thumbnail_url=result.thumbnail_url,
                    thumbnail_key=result.thumbnail_key,
                    categories=list(request.categories),
                    file_hash=request.file_hash,
                    story_id=request.story_id,
                )
            )
        except Exception as e:
            # Stored objects stay in place; the keys are logged for cleanup.
            logger.error(
                "photo_record_failed",
                task_id=request.task_id,
                key=result.key,
                thumbnail_key=result.thumbnail_key,
                storage_provider=provider_name,
                error=str(e),
            )
            raise

        progress(100)
        logger.info("photo_ingested", photo_id=photo_id, key=result.key, storage_provider=provider_name)
        return UploadedPhoto(
            photo_id=photo_id,
            url=result.url,
            key=result.key,
            thumbnail_url=result.thumbnail_url,
            thumbnail_key=result.thumbnail_key,
        )
