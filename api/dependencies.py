"""
依赖注入配置
"""
from typing import AsyncIterator, Optional

from fastapi import Query

from application.services.storage_maintenance import StorageMaintenanceService
from core.config import settings
from infrastructure.external.storage import (
    StorageProvider,
    get_storage_client,
    open_storage,
)


async def get_storage_provider(
    provider: Optional[str] = Query(None, description="存储提供商：local / github / r2，默认取配置"),
) -> AsyncIterator[StorageProvider]:
    """按请求选择存储提供商。

    未指定或与默认一致时复用启动时创建的客户端；否则按配置临时创建，
    请求结束后关闭。
    """
    default = get_storage_client()
    if default is not None and provider in (None, settings.storage.provider):
        yield default
        return

    storage = await open_storage(provider=provider)
    try:
        yield storage
    finally:
        await storage.aclose()


async def get_maintenance_service() -> StorageMaintenanceService:
    return StorageMaintenanceService()
