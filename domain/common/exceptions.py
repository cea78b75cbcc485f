"""领域层业务异常定义，供应用层与接口层使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
存储后端自身的异常见 ``infrastructure.external.storage.exceptions``。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class InvalidParameterException(BusinessException):
    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message=message,
            error_type="InvalidParameter",
            field=field,
        )


class FileTooLargeException(BusinessException):
    def __init__(self, size: int, max_size: int):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message="File too large",
            error_type="FileTooLarge",
            details={"size": size, "max_size": max_size},
            field="file",
        )

