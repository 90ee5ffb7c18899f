"""PTI 检查照片压缩与消息中继。

把检查照片压缩到目标体积以内，按每组 10 张投递到消息 API，
并在限流时按服务端建议的时间退避重试。
"""

__version__ = "0.1.0"
__author__ = "crper"
__description__ = "PTI 照片压缩与消息中继"

# 核心功能导出
from .config import ClientConfig, RelayConfig, ServerConfig
from .core.compressor import PhotoCompressor
from .engine.pool import CompressionPool, compress_images
from .models.compression_result import DeliveryResult, PoolResult, SubmissionReport
from .relay.relay import Relay
from .relay.server import create_app
from .submission import SubmissionRunner, build_batches


__all__ = [
    "ClientConfig",
    "CompressionPool",
    "DeliveryResult",
    "PhotoCompressor",
    "PoolResult",
    "Relay",
    "RelayConfig",
    "ServerConfig",
    "SubmissionReport",
    "SubmissionRunner",
    "build_batches",
    "compress_images",
    "create_app",
    "get_version",
]


def get_version() -> str:
    """获取版本号。"""
    return __version__
