"""
错误处理模块 - 定义自定义异常类和错误处理逻辑
Component-level errors are recovered by the batch comparator (exclusion or
flagging); run-level errors propagate to the caller.
"""
from enum import Enum
from typing import Optional, Any, Dict


class ErrorCode(str, Enum):
    """错误代码枚举"""
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # 上游/外部服务错误
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    SEARCH_FAILED = "SEARCH_FAILED"
    REDIS_ERROR = "REDIS_ERROR"
    STORAGE_FAILED = "STORAGE_FAILED"

    # 业务逻辑错误
    CONFIGURATION_MISMATCH = "CONFIGURATION_MISMATCH"
    EMPTY_SHINGLE_SET = "EMPTY_SHINGLE_SET"
    BATCH_TIMEOUT = "BATCH_TIMEOUT"
    BATCH_FAILED = "BATCH_FAILED"


class BaseApplicationError(Exception):
    """应用基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class InvalidInputError(BaseApplicationError):
    """输入验证错误"""
    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_INPUT,
            details=details,
        )


class ExtractionFailureError(BaseApplicationError):
    """Upstream text extraction failed; the submission is not checked."""
    def __init__(self, message: str, submission_id: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        details = {}
        if submission_id:
            details["submission_id"] = submission_id
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=f"Text extraction failed: {message}",
            error_code=ErrorCode.EXTRACTION_FAILED,
            details=details,
        )


class ConfigurationMismatchError(BaseApplicationError):
    """Two signatures were computed under different hash configurations."""
    def __init__(self, message: str, left: Optional[str] = None, right: Optional[str] = None):
        details = {}
        if left is not None:
            details["left"] = left
        if right is not None:
            details["right"] = right

        super().__init__(
            message=f"Signature configuration mismatch: {message}",
            error_code=ErrorCode.CONFIGURATION_MISMATCH,
            details=details,
        )


class EmptyShingleSetError(BaseApplicationError):
    """Cannot sign a document without shingles."""
    def __init__(self, document_id: Optional[str] = None):
        details = {}
        if document_id:
            details["document_id"] = document_id

        super().__init__(
            message="Cannot compute a signature for an empty shingle set",
            error_code=ErrorCode.EMPTY_SHINGLE_SET,
            details=details,
        )


class BatchTimeoutError(BaseApplicationError):
    """批量检测超时 - 整个运行被丢弃"""
    def __init__(self, assignment_id: str, timeout: float):
        super().__init__(
            message=f"Batch run for assignment '{assignment_id}' exceeded {timeout}s",
            error_code=ErrorCode.BATCH_TIMEOUT,
            details={"assignment_id": assignment_id, "timeout": timeout},
        )


class BatchRunError(BaseApplicationError):
    """批量检测失败 - 整个运行被丢弃"""
    def __init__(self, message: str, assignment_id: str, stage: Optional[str] = None):
        details = {"assignment_id": assignment_id}
        if stage:
            details["stage"] = stage

        super().__init__(
            message=f"Batch run failed: {message}",
            error_code=ErrorCode.BATCH_FAILED,
            details=details,
        )


class SearchError(BaseApplicationError):
    """在线搜索错误"""
    def __init__(self, message: str, query: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        details = {}
        if query:
            details["query"] = query[:100]
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=f"Online search failed: {message}",
            error_code=ErrorCode.SEARCH_FAILED,
            details=details,
        )


class StorageError(BaseApplicationError):
    """存储操作错误"""
    def __init__(self, message: str, operation: str):
        super().__init__(
            message=f"Storage operation '{operation}' failed: {message}",
            error_code=ErrorCode.STORAGE_FAILED,
            details={"operation": operation},
        )


class RedisError(StorageError):
    """Redis缓存错误"""
    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message=f"Redis error: {message}", operation=operation)
        self.error_code = ErrorCode.REDIS_ERROR
