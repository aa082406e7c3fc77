"""
业务异常

异常只携带业务码、消息键与渲染参数；HTTP 状态码映射与本地化在 core 层完成，
领域层不依赖 core。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode


class BusinessException(Exception):

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        # message_key 为空时直接使用 message
        self.message_key = message_key
        self.format_params = format_params

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={int(self.code)}, message_key={self.message_key!r})"


class DomainValidationException(BusinessException):
    """实体不变量被破坏（如访问令牌过短）"""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key="validation.domain",
        )


class StoredFileNotFoundException(BusinessException):
    """目录中不存在该 id 或访问令牌"""

    def __init__(self, file_id: Optional[int] = None):
        super().__init__(
            code=BusinessCode.FILE_NOT_FOUND,
            message="File not found",
            error_type="FileNotFound",
            details=None if file_id is None else {"file_id": file_id},
            message_key="file.not_found",
        )


class FileAuthRequiredException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.FILE_AUTH_REQUIRED,
            message="Authentication required to access this file",
            error_type="AuthRequired",
            message_key="file.auth_required",
        )


class FileRecordSaveFailedException(BusinessException):
    """对象已写入存储桶，但目录记录写入失败（对象保留，由下次同步补录）"""

    def __init__(self, key: str):
        super().__init__(
            code=BusinessCode.FILE_RECORD_SAVE_FAILED,
            message="Failed to save file record",
            error_type="FileRecordSaveFailed",
            details={"key": key},
            message_key="file.record.save_failed",
        )


class StorageOperationException(BusinessException):
    """
    存储失败的对外视图：只有业务码、操作名与消息键。

    服务端返回的原始内容只写入运维日志，不进入响应体。
    ``transient`` 为 True 表示网络层失败，调用方可以重试。
    """

    def __init__(
        self,
        *,
        code: int = BusinessCode.STORAGE_ERROR,
        operation: Optional[str] = None,
        message_key: str = "storage.error",
        format_params: Optional[dict] = None,
        transient: bool = False,
    ):
        super().__init__(
            code=code,
            message="Storage operation failed",
            error_type="StorageError",
            details={"operation": operation} if operation else None,
            message_key=message_key,
            format_params=format_params,
        )
        self.operation = operation
        self.transient = transient


class StorageNotConfiguredException(StorageOperationException):
    def __init__(self, operation: Optional[str] = None):
        super().__init__(
            code=BusinessCode.STORAGE_NOT_CONFIGURED,
            operation=operation,
            message_key="storage.not_configured",
        )
