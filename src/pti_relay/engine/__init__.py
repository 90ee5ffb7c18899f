"""图像压缩处理引擎模块。

包含有界并发执行和批量压缩逻辑。
"""

from .concurrent_executor import ConcurrentExecutor
from .pool import CompressionPool, compress_images


__all__ = [
    "CompressionPool",
    "ConcurrentExecutor",
    "compress_images",
]
