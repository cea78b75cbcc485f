"""Bounded-concurrency upload scheduler (application/services).

Files are enqueued as batches that share metadata. At most ``concurrency``
tasks are uploading at any time, admitted first-pending-first-served across
batches. When every task of a batch reaches a terminal state the batch
completion callback fires once; retrying a failed task reopens the batch.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Optional, Sequence
from uuid import uuid4

from application.ports.uploads import (
    AlbumLinker,
    BatchCompleteCallback,
    DuplicateChecker,
    ImageCompressor,
    PhotoUploader,
    PhotoUploadRequest,
)
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.storage.utils import calculate_content_hash

logger = get_logger(__name__)


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {UploadStatus.COMPLETED, UploadStatus.FAILED}


@dataclass
class UploadSource:
    """A file handed to ``add_tasks``."""
    content: bytes
    file_name: str
    content_type: str = "application/octet-stream"
    file_hash: Optional[str] = None
    preview: Optional[str] = None


@dataclass
class UploadTask:
    id: str
    batch_id: str
    content: bytes
    file_name: str
    file_size: int
    content_type: str
    title: str
    storage_config: Any
    categories: list[str] = field(default_factory=list)
    album_ids: list[str] = field(default_factory=list)
    storage_provider: Optional[str] = None
    storage_path: Optional[str] = None
    story_id: Optional[str] = None
    file_hash: Optional[str] = None
    preview: Optional[str] = None
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    photo_id: Optional[str] = None
    duplicate_of: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def _title_from_filename(file_name: str) -> str:
    name = PurePosixPath(file_name).name
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name


class UploadScheduler:
    """Process-wide upload queue.

    All task state transitions happen under one ``asyncio.Lock``; workers
    only touch their own task's progress outside it. Readers get copies
    through ``tasks``.
    """

    def __init__(
        self,
        uploader: PhotoUploader,
        config_resolver: Callable[[Optional[str]], Any],
        *,
        concurrency: Optional[int] = None,
        duplicate_checker: Optional[DuplicateChecker] = None,
        album_linker: Optional[AlbumLinker] = None,
        compressor: Optional[ImageCompressor] = None,
        compress_threshold_bytes: Optional[int] = None,
        on_batch_complete: Optional[BatchCompleteCallback] = None,
    ):
        queue_settings = settings.upload_queue
        self._uploader = uploader
        self._config_resolver = config_resolver
        self._concurrency = concurrency if concurrency is not None else queue_settings.concurrency
        if self._concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._duplicate_checker = duplicate_checker
        self._album_linker = album_linker
        self._compressor = compressor
        self._compress_threshold = (
            compress_threshold_bytes
            if compress_threshold_bytes is not None
            else queue_settings.compress_threshold_bytes
        )
        self._on_batch_complete = on_batch_complete

        self._tasks: dict[str, UploadTask] = {}
        self._claimed: set[str] = set()
        self._notified_batches: set[str] = set()
        self._in_flight = 0
        self._notifying = 0
        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._workers: set[asyncio.Task] = set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active_uploads(self) -> int:
        return self._in_flight

    @property
    def tasks(self) -> list[UploadTask]:
        """Snapshot of all tasks in enqueue order."""
        return [replace(task, categories=list(task.categories), album_ids=list(task.album_ids))
                for task in self._tasks.values()]

    def get_task(self, task_id: str) -> Optional[UploadTask]:
        task = self._tasks.get(task_id)
        return replace(task) if task else None

    async def add_tasks(
        self,
        files: Sequence[UploadSource],
        *,
        title: str = "",
        categories: Optional[Sequence[str]] = None,
        storage_provider: Optional[str] = None,
        storage_path: Optional[str] = None,
        story_id: Optional[str] = None,
        album_ids: Optional[Sequence[str]] = None,
    ) -> str:
        """Enqueue one task per file under a new batch id and return it.

        The storage configuration is resolved here and stays fixed for the
        lifetime of each task.
        """
        if not files:
            raise ValueError("add_tasks requires at least one file")

        batch_id = uuid4().hex
        storage_config = self._config_resolver(storage_provider)
        single = len(files) == 1

        new_tasks = []
        for source in files:
            new_tasks.append(
                UploadTask(
                    id=uuid4().hex,
                    batch_id=batch_id,
                    content=source.content,
                    file_name=source.file_name,
                    file_size=len(source.content),
                    content_type=source.content_type,
                    title=title if single else _title_from_filename(source.file_name),
                    storage_config=storage_config,
                    categories=list(categories or []),
                    album_ids=list(album_ids or []),
                    storage_provider=storage_provider or getattr(storage_config, "provider", None),
                    storage_path=storage_path,
                    story_id=story_id,
                    file_hash=source.file_hash or calculate_content_hash(source.content),
                    preview=source.preview,
                )
            )

        async with self._lock:
            for task in new_tasks:
                self._tasks[task.id] = task
            self._admit_locked()

        logger.info("upload_batch_enqueued", batch_id=batch_id, files=len(new_tasks),
                    storage_provider=new_tasks[0].storage_provider)
        return batch_id

    async def retry_task(self, task_id: str) -> bool:
        """Move a failed task back to pending and reopen its batch."""
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != UploadStatus.FAILED:
                return False
            task.status = UploadStatus.PENDING
            task.error = None
            task.progress = 0
            self._notified_batches.discard(task.batch_id)
            self._admit_locked()
        logger.info("upload_task_retry", task_id=task_id, batch_id=task.batch_id)
        return True

    async def remove_task(self, task_id: str) -> bool:
        """Drop a task that is not currently uploading."""
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return False
            if task.status == UploadStatus.UPLOADING:
                logger.warning("upload_task_remove_rejected", task_id=task_id)
                return False
            del self._tasks[task_id]
            notification = self._check_batch_locked(task.batch_id)
        await self._notify(notification)
        return True

    async def clear_completed(self) -> int:
        async with self._lock:
            done = [tid for tid, t in self._tasks.items() if t.status == UploadStatus.COMPLETED]
            for tid in done:
                del self._tasks[tid]
        return len(done)

    async def clear_all(self) -> int:
        """Remove every task that is not uploading and forget notified batches."""
        async with self._lock:
            removable = [tid for tid, t in self._tasks.items() if t.status != UploadStatus.UPLOADING]
            for tid in removable:
                del self._tasks[tid]
            self._notified_batches.clear()
        return len(removable)

    async def join(self) -> None:
        """Wait until no task is uploading or pending admission."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Admission and completion
    # ------------------------------------------------------------------
    def _admit_locked(self) -> None:
        available = self._concurrency - self._in_flight
        for task in self._tasks.values():
            if available <= 0:
                break
            if task.status != UploadStatus.PENDING or task.id in self._claimed:
                continue
            self._claimed.add(task.id)
            task.status = UploadStatus.UPLOADING
            task.progress = 0
            self._in_flight += 1
            available -= 1
            worker = asyncio.create_task(self._run(task))
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)

        self._update_idle()

    def _update_idle(self) -> None:
        if self._in_flight or self._notifying:
            self._idle.clear()
        else:
            self._idle.set()

    async def _run(self, task: UploadTask) -> None:
        photo_id: Optional[str] = None
        duplicate_of: Optional[str] = None
        error: Optional[str] = None
        try:
            photo_id, duplicate_of = await self._process(task)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error("upload_task_failed", task_id=task.id, batch_id=task.batch_id,
                         file_name=task.file_name, error=error)

        async with self._lock:
            if error is None:
                task.status = UploadStatus.COMPLETED
                task.progress = 100
                task.photo_id = photo_id
                task.duplicate_of = duplicate_of
            else:
                task.status = UploadStatus.FAILED
                task.error = error
            self._in_flight -= 1
            self._claimed.discard(task.id)
            notification = self._check_batch_locked(task.batch_id)
            if notification is not None:
                self._notifying += 1
            self._admit_locked()

        if notification is not None:
            try:
                await self._notify(notification)
            finally:
                self._notifying -= 1
                self._update_idle()

    async def _process(self, task: UploadTask) -> tuple[str, Optional[str]]:
        if self._duplicate_checker is not None and task.file_hash:
            matches = await self._duplicate_checker.find_duplicates([task.file_hash])
            match = matches.get(task.file_hash)
            if match is not None:
                logger.info("upload_task_duplicate", task_id=task.id, photo_id=match.photo_id)
                return match.photo_id, match.photo_id

        content = task.content
        if self._compressor is not None and len(content) > self._compress_threshold:
            content = await self._compressor.compress(content, task.content_type)
            logger.debug("upload_task_compressed", task_id=task.id,
                         original_size=task.file_size, compressed_size=len(content))

        def on_progress(value: int) -> None:
            task.progress = max(0, min(99, int(value)))

        uploaded = await self._uploader.upload(
            PhotoUploadRequest(
                task_id=task.id,
                content=content,
                file_name=task.file_name,
                content_type=task.content_type,
                title=task.title,
                storage_config=task.storage_config,
                categories=list(task.categories),
                storage_path=task.storage_path,
                story_id=task.story_id,
                file_hash=task.file_hash,
            ),
            on_progress,
        )

        if self._album_linker is not None:
            for album_id in task.album_ids:
                try:
                    await self._album_linker.add_photos(album_id, [uploaded.photo_id])
                except Exception as e:
                    logger.warning("album_link_failed", album_id=album_id,
                                   photo_id=uploaded.photo_id, error=str(e))

        return uploaded.photo_id, None

    def _check_batch_locked(self, batch_id: str) -> Optional[tuple[list[str], Optional[str], list[str]]]:
        """Mark the batch notified the first time all its tasks are terminal."""
        if batch_id in self._notified_batches:
            return None
        batch = [t for t in self._tasks.values() if t.batch_id == batch_id]
        if not batch or not all(t.is_terminal for t in batch):
            return None

        self._notified_batches.add(batch_id)
        photo_ids = [t.photo_id for t in batch if t.status == UploadStatus.COMPLETED and t.photo_id]
        failed = sum(1 for t in batch if t.status == UploadStatus.FAILED)
        logger.info("upload_batch_complete", batch_id=batch_id, completed=len(photo_ids), failed=failed)
        if not photo_ids:
            return None
        return photo_ids, batch[0].story_id, list(batch[0].album_ids)

    async def _notify(self, notification: Optional[tuple[list[str], Optional[str], list[str]]]) -> None:
        if notification is None or self._on_batch_complete is None:
            return
        photo_ids, story_id, album_ids = notification
        try:
            result = self._on_batch_complete(photo_ids, story_id, album_ids)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("upload_batch_callback_failed", photo_ids=photo_ids, story_id=story_id)
