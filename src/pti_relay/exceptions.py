"""异常处理模块。

定义压缩端和中继端的统一异常类，以及图像处理异常处理装饰器。
"""

from collections.abc import Callable
from functools import wraps
from typing import TypeVar

from PIL.Image import DecompressionBombError, UnidentifiedImageError

from .config import ConfigurationError  # noqa: F401
from .models.compression_result import CompressionFailure
from .utils.logging_helpers import get_logger
from .utils.message_formatter import MessageFormatter


logger = get_logger()
T = TypeVar("T")


# ============================================================================
# 压缩端异常
# ============================================================================


class CompressionError(Exception):
    """压缩相关错误基类"""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.message = message
        self.index = index


class ValidationError(CompressionError):
    """参数验证错误"""

    pass


class ProcessingError(CompressionError):
    """处理过程错误"""

    pass


class UnsupportedFormatError(CompressionError):
    """不支持的格式错误"""

    pass


class AttemptTimeout(ProcessingError):
    """单次编码尝试超时"""

    pass


class CompressionFailed(CompressionError):
    """兜底预设也无法完成编码"""

    def __init__(self, index: int, cause: str | None = None, attempts: int = 0):
        message = f"{MessageFormatter.photo_label(index)} 压缩失败"
        if cause:
            message += f": {cause}"
        super().__init__(message, index)
        self.cause = cause
        self.attempts = attempts

    @property
    def position(self) -> int:
        return self.index + 1


class NotEnoughPhotos(ValidationError):
    """照片数量不足"""

    def __init__(self, count: int, minimum: int):
        super().__init__(f"至少需要 {minimum} 张照片，当前 {count} 张")
        self.count = count
        self.minimum = minimum


# ============================================================================
# 中继端异常
# ============================================================================


class RelayError(Exception):
    """中继相关错误基类"""

    kind = "relay_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SummaryDeliveryFailed(RelayError):
    """摘要发送失败，不重试"""

    kind = "summary_failed"

    def __init__(self, cause: str, status_code: int | None = None):
        super().__init__(f"摘要发送失败: {cause}", status_code)
        self.cause = cause


class BatchDeliveryFailed(RelayError):
    """非限流错误，终止后续分组"""

    kind = "batch_failed"

    def __init__(self, batch_index: int, cause: str, status_code: int | None = None):
        super().__init__(f"第 {batch_index} 组发送失败: {cause}", status_code)
        self.batch_index = batch_index
        self.cause = cause


class RetriesExhausted(RelayError):
    """限流重试次数用尽"""

    kind = "retries_exhausted"

    def __init__(self, batch_index: int, attempts: int):
        super().__init__(
            f"第 {batch_index} 组发送失败: 限流重试 {attempts} 次后仍未成功", 429
        )
        self.batch_index = batch_index
        self.attempts = attempts


# 异常处理装饰器
def handle_image_errors(operation_name: str = "图像处理"):
    """统一的图像处理异常处理装饰器

    Args:
        operation_name: 操作名称，用于日志记录
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except CompressionError:
                raise
            except UnidentifiedImageError as e:
                logger.debug(f"{operation_name} - 无法识别图像格式: {e}")
                raise UnsupportedFormatError(f"不支持的图像格式: {e}") from e
            except DecompressionBombError as e:
                logger.debug(f"{operation_name} - 图像过大: {e}")
                raise ProcessingError(f"图像过大，可能存在安全风险: {e}") from e
            except OSError as e:
                logger.debug(f"{operation_name} - 解码或编码失败: {e}")
                raise ProcessingError(f"解码或编码失败: {e}") from e
            except (ValueError, TypeError) as e:
                logger.debug(f"{operation_name} - 参数错误: {e}")
                raise ValidationError(f"参数错误: {e}") from e

        return wrapper

    return decorator


class ErrorHandler:
    """统一错误处理器

    把单张照片的异常转换为失败记录，避免影响同批其他照片。
    """

    @staticmethod
    def _log_error(
        operation: str, index: int, error: Exception, level: str = "error"
    ) -> None:
        log_msg = MessageFormatter.format_error(
            operation, MessageFormatter.photo_label(index), error
        )
        getattr(logger, level, logger.error)(log_msg)

    @staticmethod
    def create_failure(
        index: int, error: Exception, attempts: int = 0
    ) -> CompressionFailure:
        """创建标准化的失败记录"""
        message = getattr(error, "message", None) or str(error)
        return CompressionFailure(source_index=index, error=message, attempts=attempts)

    @staticmethod
    def handle_compression_error(
        error: Exception, index: int, operation: str = "照片压缩", attempts: int = 0
    ) -> CompressionFailure:
        """按错误类型选择日志级别并返回失败记录"""
        match error:
            case CompressionFailed() | UnsupportedFormatError():
                ErrorHandler._log_error(operation, index, error, "warning")
            case ValidationError():
                ErrorHandler._log_error(f"{operation} - 参数验证", index, error, "warning")
            case MemoryError():
                ErrorHandler._log_error(f"{operation} - 内存不足", index, error, "error")
            case _:
                ErrorHandler._log_error(operation, index, error, "error")

        return ErrorHandler.create_failure(index, error, attempts)
