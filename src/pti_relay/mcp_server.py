"""PTI 照片压缩与提交 MCP 服务器。

把压缩池和提交编排暴露为 agent 工具。
"""

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

from fastmcp import FastMCP

from .config import ClientConfig, ConfigurationError, RelayConfig
from .engine.pool import CompressionPool
from .exceptions import CompressionError, NotEnoughPhotos
from .models.compression_result import PoolResult
from .models.submission import (
    AcquisitionMethod,
    Driver,
    Location,
    SubmissionSummary,
    Unit,
)
from .relay.http_client import RelayHttpClient
from .relay.relay import Relay
from .submission import SubmissionRunner, prepare_photos
from .utils import find_image_files, inspection_time, load_raw_images
from .utils.logging_helpers import configure_logging, get_logger
from .utils.message_formatter import MessageFormatter


# MCP 服务器响应类型定义
MCPCompressionResponse = dict[str, Any]
MCPSubmissionResponse = dict[str, Any]


class MCPResponseBuilder:
    """MCP 服务器响应构建器，专门用于构建符合 MCP 协议的响应格式。"""

    @staticmethod
    def error(
        message: str,
        error_type: str = "general",
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """构建错误结果。

        Args:
            message: 错误消息
            error_type: 错误类型
            details: 额外的错误详情

        Returns:
            dict: 标准化的错误响应
        """
        result = {
            "success": False,
            "error": message,
            "error_type": error_type,
        }

        if details:
            result["details"] = details

        return result

    @staticmethod
    def validation_error(message: str, field: str | None = None) -> dict[str, Any]:
        details = {"field": field} if field else None
        return MCPResponseBuilder.error(
            message=message, error_type="validation", details=details
        )

    @staticmethod
    def file_error(message: str, file_path: str | None = None) -> dict[str, Any]:
        details = {"file_path": file_path} if file_path else None
        return MCPResponseBuilder.error(
            message=message, error_type="file", details=details
        )

    @staticmethod
    def processing_error(message: str, operation: str | None = None) -> dict[str, Any]:
        details = {"operation": operation} if operation else None
        return MCPResponseBuilder.error(
            message=message, error_type="processing", details=details
        )


logger = get_logger()

# 创建MCP应用
mcp: FastMCP[Any] = FastMCP("PTI 照片压缩与提交服务")


def _format_pool_result(result: PoolResult) -> dict[str, Any]:
    """格式化压缩结果为MCP响应格式，不包含图像数据"""
    return {
        "total": result.total,
        "compressed": result.get_success_count(),
        "failed": result.get_failure_count(),
        "failed_positions": result.get_failed_positions(),
        "total_size": result.get_total_size(),
        "total_size_human": result.format_size(result.get_total_size()),
        "summary": result.get_summary(),
        "photos": [
            {
                "filename": p.filename,
                "width": p.width,
                "height": p.height,
                "byte_size": p.byte_size,
                "size_human": p.get_size_human(),
            }
            for p in result.photos
        ],
    }


def _collect_images(input_path: Path, recursive: bool) -> list[Path]:
    if input_path.is_file():
        return [input_path]
    return list(find_image_files(input_path, recursive=recursive))


def _open_transport(config: ClientConfig) -> AbstractContextManager:
    """有远程中继地址时走 HTTP，否则在进程内直接调用消息 API"""
    if config.relay_url:
        return RelayHttpClient(config.relay_url)
    return Relay(RelayConfig.from_env())


@mcp.tool()
def compress_photos(
    input_path: str,
    target_kb: int = 200,
    recursive: bool = False,
) -> MCPCompressionResponse:
    """压缩照片到目标体积以内（WebP）

    Args:
        input_path: 单个图片文件或图片目录
        target_kb: 每张照片的目标体积（KiB）
        recursive: 目录处理时是否递归子目录

    Returns:
        dict: 压缩报告（成功数、失败序号、总体积、每张照片尺寸）
    """
    if target_kb <= 0:
        return MCPResponseBuilder.validation_error(
            f"target_kb 必须大于 0，当前值: {target_kb}", "target_kb"
        )

    path = Path(input_path)
    if not path.exists():
        return MCPResponseBuilder.file_error(
            MessageFormatter.file_not_found(input_path), input_path
        )

    try:
        config = ClientConfig.from_env()
        images = load_raw_images(_collect_images(path, recursive))
        pool = CompressionPool(
            max_workers=config.max_workers, target_budget=target_kb * 1024
        )
        result = pool.run(images)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(MessageFormatter.operation_failed("照片压缩", input_path, e))
        return MCPResponseBuilder.validation_error(str(e))
    except CompressionError as e:
        logger.error(MessageFormatter.operation_failed("照片压缩", input_path, e))
        return MCPResponseBuilder.processing_error(e.message, "照片压缩")

    return {
        "success": result.success,
        "result": _format_pool_result(result),
        "error": result.error,
    }


@mcp.tool()
def submit_inspection(
    input_path: str,
    first_name: str,
    last_name: str,
    truck: str,
    trailer: str,
    comment: str | None = None,
    location_text: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
    accuracy_meters: float | None = None,
    recursive: bool = False,
) -> MCPSubmissionResponse:
    """压缩一个目录的检查照片并提交摘要和全部照片分组

    Args:
        input_path: 照片目录
        first_name: 司机名
        last_name: 司机姓
        truck: 车头编号
        trailer: 挂车编号
        comment: 备注（可选）
        location_text: 文字位置（可选）
        lat: 纬度（可选，与 lon 同时提供）
        lon: 经度（可选）
        accuracy_meters: 定位精度（米）
        recursive: 是否递归子目录

    Returns:
        dict: 提交报告，失败时给出已发送的组和失败的组
    """
    path = Path(input_path)
    if not path.exists():
        return MCPResponseBuilder.file_error(
            MessageFormatter.file_not_found(input_path), input_path
        )

    try:
        config = ClientConfig.from_env()
        location = None
        method = AcquisitionMethod.NONE
        if lat is not None or lon is not None or location_text:
            location = Location(
                lat=lat, lon=lon, accuracy_meters=accuracy_meters, text=location_text
            )
            method = (
                AcquisitionMethod.GEOLOCATION
                if location.has_coordinates
                else AcquisitionMethod.MANUAL
            )
        summary = SubmissionSummary(
            driver=Driver(first_name=first_name, last_name=last_name),
            unit=Unit(truck=truck, trailer=trailer),
            comment=comment or None,
            time=inspection_time(),
            location=location,
            acquisition_method=method,
        )

        pool = CompressionPool(
            max_workers=config.max_workers, target_budget=config.target_bytes
        )
        images = load_raw_images(_collect_images(path, recursive))
        pool_result = prepare_photos(pool, images, config.min_photos)

        with _open_transport(config) as transport:
            runner = SubmissionRunner(transport, config.pacing_delay_ms)
            report = runner.submit(summary, pool_result.photos)
    except NotEnoughPhotos as e:
        return MCPResponseBuilder.validation_error(e.message, "photos")
    except (ConfigurationError, ValueError, FileNotFoundError) as e:
        logger.error(MessageFormatter.operation_failed("提交检查", input_path, e))
        return MCPResponseBuilder.validation_error(str(e))

    return {
        "success": report.success,
        "summary": report.get_summary(),
        "summary_sent": report.summary_sent,
        "total_batches": report.total_batches,
        "sent_batches": report.sent_batches,
        "failed_batch": report.failed_batch,
        "compression": pool_result.get_summary(),
        "error": report.error,
    }


def main() -> None:
    """启动 MCP 服务器"""
    configure_logging()
    logger.info("启动 PTI MCP 服务器")
    mcp.run()


if __name__ == "__main__":
    main()
