"""
业务码（各层共用，唯一定义处）

号段：1xxxx 参数，2xxxx 业务，3xxxx 认证与权限，4xxxx 系统与存储。
HTTP 状态码映射见 ``core.exceptions.business_code_to_http_status``。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    NOT_FOUND = 20006
    FILE_NOT_FOUND = 20101
    FILE_RECORD_SAVE_FAILED = 20102

    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    TOKEN_INVALID = 30003
    TOKEN_EXPIRED = 30004
    FILE_AUTH_REQUIRED = 30101

    SYSTEM_ERROR = 40000
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    STORAGE_NOT_CONFIGURED = 40101
    STORAGE_ERROR = 40102
    STORAGE_INVALID_KEY = 40103
    # 本地上传源文件不存在或不可读
    STORAGE_SOURCE_MISSING = 40104


__all__ = ["BusinessCode"]
