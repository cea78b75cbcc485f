"""存储文件管理路由：列表、上传、移动、清理。"""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from api.dependencies import get_maintenance_service, get_storage_provider
from application.dto import (
    StorageCleanupRequestDTO,
    StorageCleanupResponseDTO,
    StorageListResponseDTO,
    StorageMoveRequestDTO,
    StorageMoveResponseDTO,
    StorageUploadResponseDTO,
)
from application.services.storage_maintenance import StorageMaintenanceService
from core.config import settings
from core.response import Response as ApiResponse, success_response
from domain.common.exceptions import FileTooLargeException
from infrastructure.external.storage import (
    ListOptions,
    StorageProvider,
    UploadFileInput,
    get_storage_config,
    guess_content_type,
    open_storage,
)


router = APIRouter(
    prefix="/storage",
    tags=["文件存储"],
)


@router.get(
    "/files",
    summary="列出存储中的文件",
    response_model=ApiResponse[StorageListResponseDTO],
)
async def list_files(
    prefix: Optional[str] = Query(None, description="前缀，默认取 base path"),
    cursor: Optional[str] = Query(None, description="分页游标"),
    limit: int = Query(settings.DEFAULT_LIST_LIMIT, ge=1, le=settings.DEFAULT_LIST_LIMIT),
    full_scan: bool = Query(False, description="扫描整个存储根"),
    storage: StorageProvider = Depends(get_storage_provider),
):
    result = await storage.list(
        ListOptions(prefix=prefix, cursor=cursor, limit=limit, full_scan=full_scan)
    )
    return success_response(data=StorageListResponseDTO.model_validate(result.model_dump()))


@router.post(
    "/upload",
    summary="上传单个文件",
    response_model=ApiResponse[StorageUploadResponseDTO],
)
async def upload_file(
    file: UploadFile = File(...),
    path: Optional[str] = Form(None, description="子目录"),
    use_full_path: bool = Form(False, description="path 为从存储根开始的完整目录"),
    storage: StorageProvider = Depends(get_storage_provider),
):
    content = await file.read()
    max_size = settings.storage.max_file_size
    if len(content) > max_size:
        raise FileTooLargeException(len(content), max_size)

    filename = PurePosixPath(file.filename or "upload.bin").name
    content_type = file.content_type or guess_content_type(filename)
    result = await storage.upload(
        UploadFileInput(
            content=content,
            filename=filename,
            path=path,
            content_type=content_type,
            use_full_path=use_full_path,
        )
    )
    return success_response(
        data=StorageUploadResponseDTO(
            key=result.key,
            url=result.url,
            size=len(content),
            content_type=content_type,
        ),
        message="上传成功",
    )


@router.post(
    "/move",
    summary="移动文件（含缩略图）",
    response_model=ApiResponse[StorageMoveResponseDTO],
)
async def move_file(payload: StorageMoveRequestDTO):
    storage = await open_storage(provider=payload.provider)
    try:
        result = await storage.move(payload.old_key, payload.new_path, payload.thumbnail_key)
    finally:
        await storage.aclose()
    return success_response(data=StorageMoveResponseDTO.model_validate(result.model_dump()))


@router.post(
    "/cleanup",
    summary="删除孤立文件及其缩略图",
    response_model=ApiResponse[StorageCleanupResponseDTO],
)
async def cleanup_files(
    payload: StorageCleanupRequestDTO,
    service: StorageMaintenanceService = Depends(get_maintenance_service),
):
    report = await service.cleanup(get_storage_config(payload.provider), payload.keys)
    return success_response(data=StorageCleanupResponseDTO.model_validate(report.model_dump()))
