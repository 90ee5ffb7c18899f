"""工具模块包。

提供纯工具函数，不包含业务逻辑。
"""

from .file_helpers import (
    find_image_files,
    get_image_mime_type,
    load_raw_image,
    load_raw_images,
)
from .logging_helpers import configure_logging, get_logger
from .message_formatter import MessageFormatter
from .naming_helpers import PhotoNaming
from .time_helpers import inspection_time


__all__ = [
    "MessageFormatter",
    "PhotoNaming",
    "configure_logging",
    "find_image_files",
    "get_image_mime_type",
    "get_logger",
    "inspection_time",
    "load_raw_image",
    "load_raw_images",
]
