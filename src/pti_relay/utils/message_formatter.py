"""消息格式化工具模块。

提供统一的错误消息、进度消息格式化功能。
"""

from pathlib import Path
from typing import Any

from humanize import naturalsize


class MessageFormatter:
    """统一的消息格式化器"""

    @staticmethod
    def file_not_found(file_path: str | Path) -> str:
        """文件不存在错误消息"""
        return f"文件不存在: {file_path}"

    @staticmethod
    def directory_not_found(directory: str | Path) -> str:
        """目录不存在错误消息"""
        return f"目录不存在: {directory}"

    @staticmethod
    def path_not_directory(path: str | Path) -> str:
        """路径不是目录错误消息"""
        return f"路径不是目录: {path}"

    @staticmethod
    def operation_failed(
        operation: str, target: Any, error: Exception | None = None
    ) -> str:
        """操作失败消息"""
        msg = f"{operation}失败: {target}"
        if error:
            msg += f" - {error}"
        return msg

    @staticmethod
    def format_error(operation: str, target: Any, error: Exception) -> str:
        """格式化通用错误消息"""
        return f"{operation}失败 [{target}]: {error}"

    @staticmethod
    def photo_label(index: int) -> str:
        """照片的 1 起始序号标签"""
        return f"照片 #{index + 1}"

    @staticmethod
    def attempt_result(
        index: int,
        attempt: int,
        quality: float,
        max_side: int,
        size: int,
        elapsed: float,
    ) -> str:
        """单次编码尝试结果"""
        return (
            f"{MessageFormatter.photo_label(index)} 第 {attempt} 次尝试 "
            f"(q={quality:.2f}, {max_side}px): {naturalsize(size, binary=True)}, "
            f"{elapsed:.2f}s"
        )

    @staticmethod
    def batch_label(index: int, total: int) -> str:
        """分组进度标签"""
        return f"第 {index}/{total} 组"
